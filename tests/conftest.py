import typing

import mido
import pytest

import arpline.clock
import arpline.events


class FakeMidiOut:

	"""Minimal MIDI output stub for tests that keeps what it was sent."""

	def __init__ (self) -> None:

		self.sent: typing.List[mido.Message] = []
		self.closed = False


	def send (self, message: mido.Message) -> None:

		"""Store outgoing MIDI messages."""

		self.sent.append(message)


	def close (self) -> None:

		self.closed = True


class FakeMidiIn:

	"""Minimal MIDI input stub for tests."""

	def __init__ (self, callback: typing.Optional[typing.Callable] = None) -> None:

		"""Store the callback for injecting test messages."""

		self.callback = callback
		self.closed = False

	def close (self) -> None:

		self.closed = True

	def inject (self, message: mido.Message) -> None:

		"""Simulate receiving a MIDI message by calling the stored callback."""

		if self.callback is not None:
			self.callback(message)


# Module-level references so tests can reach the most recently opened fakes.
_current_fake_output: typing.Optional[FakeMidiOut] = None
_current_fake_input: typing.Optional[FakeMidiIn] = None


def _fake_get_output_names () -> list[str]:

	"""Return a fixed list of MIDI output names for tests."""

	return ["Dummy MIDI"]


def _fake_open_output (name: str) -> FakeMidiOut:

	"""Return a fake MIDI output regardless of the name."""

	global _current_fake_output
	fake = FakeMidiOut()
	_current_fake_output = fake
	return fake


def _fake_get_input_names () -> list[str]:

	"""Return a fixed list of MIDI input names for tests."""

	return ["Dummy Keys"]


def _fake_open_input (name: str, callback: typing.Optional[typing.Callable] = None) -> FakeMidiIn:

	"""Return a fake MIDI input regardless of the name."""

	global _current_fake_input
	fake = FakeMidiIn(callback=callback)
	_current_fake_input = fake
	return fake


@pytest.fixture
def patch_midi (monkeypatch: pytest.MonkeyPatch) -> None:

	"""Patch mido to use fake MIDI output and input for all tests that need it."""

	monkeypatch.setattr(mido, "get_output_names", _fake_get_output_names)
	monkeypatch.setattr(mido, "open_output", _fake_open_output)
	monkeypatch.setattr(mido, "get_input_names", _fake_get_input_names)
	monkeypatch.setattr(mido, "open_input", _fake_open_input)


@pytest.fixture
def clock () -> arpline.clock.VirtualClock:

	"""A virtual clock starting at time zero."""

	return arpline.clock.VirtualClock()


class EventLog:

	"""Collects everything an engine emits, in emission order."""

	def __init__ (self, engine: typing.Any) -> None:

		self.notes: typing.List[arpline.events.NoteEvent] = []
		self.offs: typing.List[arpline.events.NoteOff] = []
		self.order: typing.List[typing.Tuple[str, int]] = []
		self.completions = 0

		engine.events.on("note", self._on_note)
		engine.events.on("note_off", self._on_off)
		engine.events.on("cycle_complete", self._on_complete)
		engine.events.on("pattern_complete", self._on_complete)

	def _on_note (self, event: arpline.events.NoteEvent) -> None:

		self.notes.append(event)
		self.order.append(("on", event.pitch))

	def _on_off (self, event: arpline.events.NoteOff) -> None:

		self.offs.append(event)
		self.order.append(("off", event.pitch))

	def _on_complete (self) -> None:

		self.completions += 1

	@property
	def pitches (self) -> typing.List[int]:

		return [event.pitch for event in self.notes]

	@property
	def times (self) -> typing.List[float]:

		return [event.time for event in self.notes]


@pytest.fixture
def event_log () -> typing.Callable[[typing.Any], EventLog]:

	"""Return a function that attaches an :class:`EventLog` to an engine."""

	return EventLog
