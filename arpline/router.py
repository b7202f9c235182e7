import asyncio
import logging
import typing

import arpline.arpeggiator
import arpline.clock
import arpline.constants.velocity
import arpline.event_emitter
import arpline.events
import arpline.step_sequencer


logger = logging.getLogger(__name__)


class NoteRouter:

	"""
	Sends live key input to whichever engine currently owns the keyboard.

	Priority, highest first:

	1. A sequencer that is recording (the key is written into the grid).
	2. An enabled sequencer (the key sets its root and may start it).
	3. An enabled arpeggiator (the key joins the held notes).
	4. Direct pass-through: the key is re-emitted on ``router.events`` as
	   ``"note"`` / ``"note_off"`` so it can be played straight away.

	Releases follow the same routing, except that recording ignores them.
	"""

	def __init__ (
		self,
		clock: arpline.clock.Clock,
		arpeggiator: typing.Optional[arpline.arpeggiator.Arpeggiator] = None,
		sequencer: typing.Optional[arpline.step_sequencer.StepSequencer] = None,
		arpeggiator_enabled: bool = True,
		sequencer_enabled: bool = True
	) -> None:

		self.clock = clock
		self.arpeggiator = arpeggiator
		self.sequencer = sequencer
		self.arpeggiator_enabled = arpeggiator_enabled
		self.sequencer_enabled = sequencer_enabled
		self.events = arpline.event_emitter.EventEmitter()


	def route (self) -> str:

		"""
		Return where a key press would go right now: ``"recording"``, ``"sequencer"``, ``"arpeggiator"`` or ``"direct"``.
		"""

		if self.sequencer is not None and self.sequencer.is_recording:
			return "recording"

		if self.sequencer is not None and self.sequencer_enabled:
			return "sequencer"

		if self.arpeggiator is not None and self.arpeggiator_enabled:
			return "arpeggiator"

		return "direct"


	def note_on (self, pitch: int, velocity: int = arpline.constants.velocity.DEFAULT_VELOCITY) -> str:

		"""
		Route a key press and return the route taken.
		"""

		route = self.route()

		if route == "recording":
			self.sequencer.record_note(pitch, velocity)  # type: ignore[union-attr]

		elif route == "sequencer":
			self.sequencer.note_on(pitch, velocity)  # type: ignore[union-attr]

		elif route == "arpeggiator":
			self.arpeggiator.note_on(pitch, velocity)  # type: ignore[union-attr]

		else:
			self.events.emit("note", arpline.events.NoteEvent(pitch=pitch, velocity=velocity, gate=1.0, time=self.clock.now()))

		logger.debug(f"Key {pitch} routed to {route}")

		return route


	def note_off (self, pitch: int) -> str:

		route = self.route()

		if route == "sequencer":
			self.sequencer.note_off(pitch)  # type: ignore[union-attr]

		elif route == "arpeggiator":
			self.arpeggiator.note_off(pitch)  # type: ignore[union-attr]

		elif route == "direct":
			self.events.emit("note_off", arpline.events.NoteOff(pitch=pitch, time=self.clock.now()))

		return route


	def handle_message (self, message: typing.Any) -> None:

		"""
		Route a ``mido`` note message. A note_on with velocity 0 counts as a release.
		"""

		if message.type == 'note_on' and message.velocity > 0:
			self.note_on(message.note, message.velocity)

		elif message.type in ('note_on', 'note_off'):
			self.note_off(message.note)


	def input_callback (self, loop: asyncio.AbstractEventLoop) -> typing.Callable[[typing.Any], None]:

		"""Return a ``mido`` input callback that routes messages on ``loop``.

		``mido`` calls input callbacks from its own thread, so each message is
		handed to the event loop with ``call_soon_threadsafe`` before any engine
		state is touched.
		"""

		def callback (message: typing.Any) -> None:

			loop.call_soon_threadsafe(self.handle_message, message)

		return callback
