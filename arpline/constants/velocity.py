"""MIDI velocity constants.

Velocity is the MIDI attack strength. Note events emitted by the engines
always carry a velocity of at least 1 - a velocity of 0 would read as a
note-off to most receivers.
"""

# Primary defaults
DEFAULT_VELOCITY = 100          # Arpeggiator notes and new sequencer steps

# Sequencer randomize() ranges
RANDOM_VELOCITY_LOW = 64
RANDOM_VELOCITY_HIGH = 127

# Humanize: maximum velocity deviation at humanize = 1.0
HUMANIZE_VELOCITY_RANGE = 10

# Range accepted on note events
MIN_VELOCITY = 1
MAX_VELOCITY = 127
