"""Clamp ranges for live performance controls.

Out-of-range values written to these controls are clamped, never rejected.
"""

MIN_TEMPO = 40.0
MAX_TEMPO = 300.0
DEFAULT_TEMPO = 120.0

MIN_OCTAVES = 1
MAX_OCTAVES = 4

MIN_BARS_PER_CHORD = 1
MAX_BARS_PER_CHORD = 8

DEFAULT_GATE_LENGTH = 0.8

# Sequencer step length is a fraction of the step, in (0, 1].
MIN_STEP_LENGTH = 0.01
MAX_STEP_LENGTH = 1.0

MIN_NOTE = 0
MAX_NOTE = 127

VALID_STEP_COUNTS = (4, 8, 16, 32, 64)
DEFAULT_STEP_COUNT = 16

# Swing lengthens odd steps by up to this fraction of a step.
MAX_SWING_STRETCH = 0.5


def clamp (value: float, low: float, high: float) -> float:

	"""
	Clamp a value into the inclusive range [low, high].
	"""

	return max(low, min(high, value))
