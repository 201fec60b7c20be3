"""Batch orchestration for a script-driven headless CAD engine.

One job per drawing file: resolve parameters, write a control script and its
parameter files, run the engine under a deadline, then classify the outcome
from exit behavior, captured output and the expected artifact on disk.

The engine itself (``accoreconsole`` plus the loaded plugin DLLs) is outside
our control, which is why parameters travel through three channels at once
(environment, script variables, sidecar JSON) and why success is judged from
the filesystem rather than the exit code.
"""
