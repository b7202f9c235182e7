"""Constants for arpline.

This package contains four sets of constants:

- ``arpline.constants.durations`` - Note divisions and their length in beats
- ``arpline.constants.velocity`` - MIDI velocity defaults and range
- ``arpline.constants.limits`` - Clamp ranges for live performance controls
- ``arpline.constants.timing`` - Look-ahead scheduler window and poll interval
"""
