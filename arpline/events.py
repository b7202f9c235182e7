import dataclasses


@dataclasses.dataclass(frozen=True)
class NoteEvent:

	"""
	A note trigger emitted by an engine ahead of its scheduled time.

	``time`` is the absolute clock time (seconds) the note should start at;
	listeners with sample-accurate scheduling should start the note exactly
	then. ``gate`` is the fraction of the step the note sounds for and
	``duration`` is that length in seconds.
	"""

	pitch: int
	velocity: int
	gate: float
	time: float = 0.0
	duration: float = 0.0


@dataclasses.dataclass(frozen=True)
class NoteOff:

	"""
	A note release. ``time`` is the exact clock time the release is due.
	"""

	pitch: int
	time: float = 0.0
