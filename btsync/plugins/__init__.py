"""Feature plugins loadable by name from the configuration."""

from btsync.plugins.battery import NAME as BATTERY, BatteryPlugin

AVAILABLE = {BATTERY: BatteryPlugin}
