"""
The `ecoplug_control` package is the autonomous control engine behind the
EcoPlug dashboard. It decides, for every smart outlet of the institution,
whether the outlet should be on or off, and writes that decision to the shared
Firebase Realtime Database the outlets' firmware reads from.

Decisions follow a strict priority order: manual overrides first (unplugged
outlets, human bypass), then energy limits (a combined monthly limit shared by
a group of outlets supersedes an outlet's own monthly limit), and only then
the time-of-day and day-of-week schedule. Each decision is derived from
scratch on every tick and only writes what actually changes, so any number of
pollers can run side by side and still converge on the same state.

Sub-packages:
-------------
- `control`:
  The pure decision engine: unit-tagged quantities, key canonicalisation,
  schedule evaluation, energy aggregation, limit classification, the override
  gate, the arbiter and billing estimates.

- `real_time`:
  The `ControlPoller`, which runs the engine on APScheduler interval jobs and
  applies its decisions, and the unplug detector.

- `store`:
  The document store contract with its Firebase and in-memory bindings,
  and the device activity log.

- `util`:
  Centralized logging and the layered YAML/environment settings.
"""
