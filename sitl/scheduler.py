"""
Simulation Scheduler
=====================
Fixed-period loop that picks the active airframe model from SystemSettings
and advances it one tick at a time.

Each model object is created on first use and kept, so flipping the
airframe type back and forth resumes each model where it left off.
"""

import math
import time

import numpy as np

from sitl import config as cfg
from sitl.models import (ConstantModel, FixedWingModel, ModelAgnosticModel,
                         MultirotorModel, RigidBodyModel, SimMode,
                         mode_for_airframe)
from sitl.noise import RandomGaussian
from sitl.sensors import make_accel_bias
from sitl.uavobjects import AttitudeSimulated, MeasurementBus, SystemSettings


class Watchdog:
    """Health flag the host checks for liveness; refreshed every tick."""

    def __init__(self):
        self.updates = 0
        self.last_update = None

    def update_flag(self, now: float) -> None:
        self.updates += 1
        self.last_update = now


class SimulationScheduler:

    def __init__(self, bus: MeasurementBus, seed: int | None = None,
                 mode: SimMode | None = None, override_attitude: bool = False,
                 period: float = cfg.SENSOR_PERIOD_S,
                 watchdog: Watchdog | None = None):
        self.bus = bus
        self.forced_mode = mode
        self.override_attitude = override_attitude
        self.period = period
        self.watchdog = watchdog or Watchdog()

        self.gauss = RandomGaussian(np.random.default_rng(seed))
        self.accel_bias = make_accel_bias(self.gauss)

        self._models = {}
        self.active_mode = None
        self.tick_count = 0

        bus.initialize()

    # ──────────────────────────────────────────────────────────────────────
    def select_mode(self) -> SimMode:
        if self.forced_mode is not None:
            return self.forced_mode
        return mode_for_airframe(self.bus.get(SystemSettings).airframe_type)

    def model_for(self, mode: SimMode):
        model = self._models.get(mode)
        if model is None:
            if mode is SimMode.CONSTANT:
                model = ConstantModel()
            elif mode is SimMode.MODEL_AGNOSTIC:
                model = ModelAgnosticModel(self.gauss)
            elif mode is SimMode.MULTIROTOR:
                model = MultirotorModel(self.gauss, self.accel_bias,
                                        self.override_attitude)
            else:
                model = FixedWingModel(self.gauss, self.accel_bias,
                                       self.override_attitude)
            self._models[mode] = model
        return model

    def tick(self, now: float) -> SimMode:
        """Run one scheduler period at monotonic time ``now``."""
        self.watchdog.update_flag(now)
        mode = self.select_mode()
        model = self.model_for(mode)
        if mode is not self.active_mode and isinstance(model, RigidBodyModel):
            # Time spent inactive is not integrated
            model.resume()
        model.step(self.bus, now)
        self.active_mode = mode
        self.tick_count += 1
        return mode

    # ──────────────────────────────────────────────────────────────────────
    def run(self, duration: float | None = None, realtime: bool = True,
            verbose: bool = True) -> int:
        """
        Tick until ``duration`` seconds of simulated time have passed (forever
        if None).  With ``realtime`` the loop is paced to ``period`` on the
        wall clock; otherwise it runs flat out on a simulated clock.
        Returns the number of ticks run.
        """
        n_ticks = None if duration is None else int(math.ceil(duration / self.period))

        if verbose:
            print(f"[Sim] Starting — period = {self.period * 1000:.1f} ms  "
                  f"({1 / self.period:.0f} Hz)  "
                  f"{'real-time' if realtime else 'free-running'}")

        wall_t0 = time.perf_counter()
        last_perf_t = wall_t0
        perf_ticks = 0
        overrun_count = 0
        tick = 0

        try:
            while n_ticks is None or tick < n_ticks:
                wall_start = time.perf_counter()
                now = (wall_start - wall_t0) if realtime else tick * self.period

                self.tick(now)
                tick += 1
                perf_ticks += 1

                # Wall-clock pacing
                if realtime:
                    sleep_s = self.period - (time.perf_counter() - wall_start)
                    if sleep_s > 0:
                        # Busy-wait for last ~0.2 ms for precision
                        target = wall_start + self.period
                        if sleep_s > 0.0003:
                            time.sleep(sleep_s - 0.0002)
                        while time.perf_counter() < target:
                            pass
                    else:
                        overrun_count += 1

                wall_now = time.perf_counter()
                if verbose and wall_now - last_perf_t >= cfg.PERF_LOG_INTERVAL_S:
                    rate = perf_ticks / (wall_now - last_perf_t)
                    truth = self.bus.get(AttitudeSimulated)
                    pos = truth.position
                    print(f"[Sim] tick={self.tick_count:>8d}  rate={rate:7.1f} Hz  "
                          f"overruns={overrun_count}  mode={self.active_mode.value}  "
                          f"pos=({pos[0]:+7.2f},{pos[1]:+7.2f},{pos[2]:+7.2f})")
                    perf_ticks = 0
                    overrun_count = 0
                    last_perf_t = wall_now

        except KeyboardInterrupt:
            print("\n[Sim] Shutting down …")

        if verbose:
            print(f"[Sim] Done. {tick} ticks.")
        return tick
