"""
SITL Synthetic Sensor Simulator
================================
Physics-based stand-in for the sensor drivers of a flight controller, for
software-in-the-loop testing.

Modules
-------
config      Shared constants (periods, vehicle params, noise, MAVLink IDs)
uavobjects  Record types and the measurement bus
noise       Gaussian sampler and drift processes
attitude    Quaternion kinematics and conversions
magbias     Magnetometer hard-iron bias nulling
sensors     Sensor synthesis from simulated truth
models      Constant / model-agnostic / multirotor / fixed-wing models
scheduler   Fixed-period simulation loop
filters     State-estimation filter plugin contract (airspeed example)
bridge      MAVLink sensor output and command-line entry point
"""
