"""
SITL Sensor Simulator — Shared Configuration
=============================================
All constants shared between the airframe models, the sensor emulator, the
scheduler and the MAVLink bridge.  Changing a value here propagates
everywhere; the firmware under test must agree on the MAVLink IDs and units.
"""

import math

# ═══════════════════════════════════════════════════════════════════════════════
#  MAVLink System / Component IDs
# ═══════════════════════════════════════════════════════════════════════════════
SIM_SYSID               = 2     # Sensor simulator
SIM_COMPID              = 1

# Default sink for synthetic sensor output (flight stack under test)
SIM_MAVLINK_URI         = "udpout:127.0.0.1:14560"

# ═══════════════════════════════════════════════════════════════════════════════
#  Timing
# ═══════════════════════════════════════════════════════════════════════════════
SENSOR_PERIOD_S         = 0.002     # 2 ms scheduler tick (500 Hz)
MIN_DT_S                = 0.002     # Integration step never shorter than this
PERF_LOG_INTERVAL_S     = 5.0       # Status line period
HEARTBEAT_INTERVAL_S    = 1.0

# ═══════════════════════════════════════════════════════════════════════════════
#  Sensor Publication Periods (seconds) — both dynamic models
# ═══════════════════════════════════════════════════════════════════════════════
GPS_PERIOD_S            = 0.1           # 10 Hz position fix
GPS_VEL_PERIOD_S        = 0.1           # 10 Hz velocity
GPS_VEL_DELAY_S         = 0.001         # Velocity staggered 1 ms behind position
MAG_PERIOD_S            = 1.0 / 75.0    # 75 Hz
BARO_PERIOD_S           = 1.0 / 20.0    # 20 Hz
AIRSPEED_PERIOD_S       = BARO_PERIOD_S

# ═══════════════════════════════════════════════════════════════════════════════
#  Physical Constants
# ═══════════════════════════════════════════════════════════════════════════════
GRAVITY                 = 9.81
EARTH_RADIUS_M          = 6.378137e6

# Fixed-point scale of HomeLocation / GPSPosition latitude & longitude
LATLON_SCALE            = 1.0e7     # degrees * 1e7

# ═══════════════════════════════════════════════════════════════════════════════
#  Multirotor Model
# ═══════════════════════════════════════════════════════════════════════════════
MR_ACTUATOR_ALPHA       = 0.99              # Low-pass on actuator command
MR_RATE_SCALE_DPS       = 250.0             # deg/s per unit actuator deflection
MR_MAX_THRUST           = GRAVITY * 2       # m/s² at full throttle
MR_K_FRICTION           = 1.0               # 1/s linear drag

# ═══════════════════════════════════════════════════════════════════════════════
#  Fixed-Wing Model
# ═══════════════════════════════════════════════════════════════════════════════
FW_ACTUATOR_ALPHA       = 0.8
FW_MAX_THRUST           = GRAVITY * 2
FW_K_FRICTION           = 0.2
FW_LIFT_SPEED           = 8.0       # m/s forward airspeed giving lift == weight
FW_ROLL_HEADING_COUPLING = 0.1      # deg/s heading change per deg of roll
FW_PITCH_THRUST_COUPLING = 0.2      # m/s² forward deceleration per deg of pitch
FW_SIDESLIP_DAMPING     = 100.0     # Friction multiplier on side/down airspeed
FW_MAG_DISTURBANCE      = 100.0     # Hard-iron offset added to each mag axis

# ═══════════════════════════════════════════════════════════════════════════════
#  Noise & Drift Processes   x[k+1] = decay * x[k] + N(0,1) / divisor
# ═══════════════════════════════════════════════════════════════════════════════
WIND_DECAY              = 0.95
WIND_NOISE_DIV          = 10.0

GPS_DRIFT_DECAY         = 0.95
GPS_DRIFT_NOISE_DIV     = 10.0

GPS_VEL_DRIFT_DECAY     = 0.65
GPS_VEL_DRIFT_NOISE_DIV = 5.0

BARO_OFFSET_INIT_M      = 50.0      # First-step baro offset
BARO_DRIFT_NOISE_DIV    = 100.0     # Random-walk step on the offset

ACCEL_BIAS_NOISE_DIV    = 10.0      # Per-process accel bias = N(0,1) / 10
ACCEL_TEMPERATURE_C     = 30.0

GAUSS_MAX_TRIES         = 100       # Polar rejection retries before giving up

# ═══════════════════════════════════════════════════════════════════════════════
#  GPS Fix Quality (reported constants)
# ═══════════════════════════════════════════════════════════════════════════════
GPS_SATELLITES          = 7
GPS_PDOP                = 1.0

# ═══════════════════════════════════════════════════════════════════════════════
#  Magnetometer Bias Nulling
# ═══════════════════════════════════════════════════════════════════════════════
MAG_BIAS_RATE           = 0.01
MAG_XY_NORM_EPS         = 1e-6      # Skip horizontal update below this norm

# ═══════════════════════════════════════════════════════════════════════════════
#  Home / Reference Point  (equator, sea level)
#
#  Be is the local magnetic field in NED, same units as the Magnetometer
#  record (nT).
# ═══════════════════════════════════════════════════════════════════════════════
HOME_LAT_E7             = 0
HOME_LON_E7             = 0
HOME_ALT_M              = 0.0
HOME_BE                 = (26000.0, 400.0, 40000.0)

# ═══════════════════════════════════════════════════════════════════════════════
#  CONSTANT / MODEL-AGNOSTIC reference outputs
# ═══════════════════════════════════════════════════════════════════════════════
CONST_ACCEL             = (0.0, 0.0, -GRAVITY)
CONST_MAG               = (400.0, 0.0, 800.0)
CONST_BARO_ALT_M        = 1.0

# ═══════════════════════════════════════════════════════════════════════════════
#  MAVLink unit conversions
# ═══════════════════════════════════════════════════════════════════════════════
DEG_TO_RAD              = math.pi / 180.0
NT_TO_GAUSS             = 1e-5
SEA_LEVEL_PRESSURE_HPA  = 1013.25
AIR_DENSITY_KG_M3       = 1.225
