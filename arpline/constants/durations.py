"""Beat-based note divisions.

All values are in **beats**, where 1.0 = one quarter note. A division is the
length of one arpeggiator or sequencer step relative to the tempo::

    import arpline.constants.durations as dur

    # One sixteenth-note step at 120 BPM
    seconds = 60.0 / 120 * dur.SIXTEENTH     # 0.125

Triplet divisions fit three steps into the space of two.
"""

import enum
import typing


THIRTYSECOND = 0.125
SIXTEENTH = 0.25
TRIPLET_SIXTEENTH = 1 / 6
EIGHTH = 0.5
TRIPLET_EIGHTH = 1 / 3
QUARTER = 1.0


class NoteDivision (enum.Enum):

	"""
	Rhythmic subdivision of one step.
	"""

	QUARTER = "1/4"
	EIGHTH = "1/8"
	SIXTEENTH = "1/16"
	EIGHTH_TRIPLET = "1/8T"
	SIXTEENTH_TRIPLET = "1/16T"
	THIRTYSECOND = "1/32"


	@classmethod
	def _missing_ (cls, value: object) -> typing.Optional["NoteDivision"]:

		# Accept "1/8t" as well as "1/8T".
		if isinstance(value, str):
			for member in cls:
				if member.value.lower() == value.strip().lower():
					return member

		return None


DIVISION_BEATS: typing.Dict[NoteDivision, float] = {
	NoteDivision.QUARTER: QUARTER,
	NoteDivision.EIGHTH: EIGHTH,
	NoteDivision.SIXTEENTH: SIXTEENTH,
	NoteDivision.EIGHTH_TRIPLET: TRIPLET_EIGHTH,
	NoteDivision.SIXTEENTH_TRIPLET: TRIPLET_SIXTEENTH,
	NoteDivision.THIRTYSECOND: THIRTYSECOND,
}

DEFAULT_DIVISION = NoteDivision.SIXTEENTH
