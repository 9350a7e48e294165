"""
The `control` module holds the decision engine. Its functions are pure: they
take parsed documents and the current time and return what should be written,
leaving every store access to the `real_time` pollers.

Key components include:

- [`units.py`](src/ecoplug_control/control/units.py) and
  [`keys.py`](src/ecoplug_control/control/keys.py): unit-tagged energy and power
  quantities, outlet key canonicalisation and daily log date keys.

- [`schedule.py`](src/ecoplug_control/control/schedule.py): parses stored
  schedules once into time windows and frequencies and evaluates them.

- [`energy.py`](src/ecoplug_control/control/energy.py): sums daily logs over
  today, the current month or an arbitrary range, optionally correcting
  sensor glitches from the logged runtime.

- [`models.py`](src/ecoplug_control/control/models.py): typed views over the
  device and combined-limit documents.

- [`limits.py`](src/ecoplug_control/control/limits.py),
  [`gate.py`](src/ecoplug_control/control/gate.py) and
  [`arbiter.py`](src/ecoplug_control/control/arbiter.py): the override gate,
  the limit classifier and the arbiter that combines them with the schedule
  into one idempotent decision per outlet.

- [`billing.py`](src/ecoplug_control/control/billing.py): current and
  projected monthly bill estimates.
"""
