"""
The `real_time` module drives the decision engine against the shared store.

Key functionalities and components include:

- [`poller.py`](src/ecoplug_control/real_time/poller.py): This submodule defines
  the `ControlPoller`, the single canonical polling loop. It registers
  APScheduler interval jobs that fetch every outlet and combined-limit group,
  ask the arbiter for a decision per outlet and write only the fields that
  changed, with limit enforcement applied (and the store re-read) before any
  schedule change.

- [`unplug.py`](src/ecoplug_control/real_time/unplug.py): This submodule
  defines the `UnplugDetector`, which flags scheduled outlets whose sensor
  timestamp stopped moving as unplugged and clears the flag when they report
  again.
"""
