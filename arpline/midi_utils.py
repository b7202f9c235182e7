import itertools
import logging
import typing

import mido

import arpline.clock
import arpline.constants.limits
import arpline.events


logger = logging.getLogger(__name__)


TICKS_PER_BEAT = 480


def match_port_name (available: typing.Sequence[str], wanted: str) -> typing.Optional[str]:

	"""Find a port by name.

	An exact match wins. Otherwise a unique case-insensitive substring match
	is accepted, so ``"scarlett"`` finds ``"Scarlett 2i4 USB:Scarlett 2i4 USB MIDI 1 16:0"``.
	Returns None when nothing (or more than one port) matches.
	"""

	if wanted in available:
		return wanted

	partial = [name for name in available if wanted.lower() in name.lower()]

	if len(partial) == 1:
		return partial[0]

	if len(partial) > 1:
		logger.error(f"MIDI port name {wanted!r} is ambiguous: {partial}")

	return None


def select_output_device (device_name: typing.Optional[str] = None) -> typing.Tuple[typing.Optional[str], typing.Optional[typing.Any]]:

	"""
	Open a MIDI output by (partial) name, or the first available one when no name is given.

	Returns ``(name, port)``, or ``(None, None)`` when no port could be opened.
	"""

	try:
		outputs = mido.get_output_names()

		if not outputs:
			logger.error("No MIDI output devices found.")
			return None, None

		if device_name is None:
			selected = outputs[0]
			if len(outputs) > 1:
				logger.info(f"Using first MIDI output {selected!r}; pass --output to choose from {outputs}")
		else:
			selected = match_port_name(outputs, device_name)
			if selected is None:
				logger.error(f"MIDI output {device_name!r} not found. Available devices: {outputs}")
				return None, None

		midi_out = mido.open_output(selected)
		logger.info(f"Opened MIDI output: {selected}")

		return selected, midi_out

	except Exception as e:
		logger.error(f"Failed to open MIDI output: {e}")
		return None, None


def select_input_device (device_name: typing.Optional[str], callback: typing.Optional[typing.Callable] = None) -> typing.Tuple[typing.Optional[str], typing.Optional[typing.Any]]:

	"""
	Open the MIDI input matching ``device_name`` with ``callback`` attached.

	Returns ``(None, None)`` when no input is requested or none matches.
	"""

	if device_name is None:
		return None, None

	try:
		inputs = mido.get_input_names()
		selected = match_port_name(inputs, device_name)

		if selected is None:
			logger.error(f"MIDI input {device_name!r} not found. Available devices: {inputs}")
			return None, None

		midi_in = mido.open_input(selected, callback=callback)
		logger.info(f"Opened MIDI input: {selected}")

		return selected, midi_in

	except Exception as e:
		logger.error(f"Failed to open MIDI input: {e}")
		return None, None


class MidiRecorder:

	"""
	Captures timestamped MIDI messages and writes them to a Standard MIDI File.
	"""

	def __init__ (self, tempo: float = arpline.constants.limits.DEFAULT_TEMPO, start_time: typing.Optional[float] = None) -> None:

		"""
		Parameters:
			tempo: BPM written to the file, used to convert seconds to ticks.
			start_time: Clock time of tick 0. Defaults to the first recorded event.
		"""

		self.tempo = tempo
		self.start_time = start_time
		self.events: typing.List[typing.Tuple[float, mido.Message]] = []


	def __len__ (self) -> int:

		return len(self.events)


	def record (self, time: float, message: mido.Message) -> None:

		if self.start_time is None:
			self.start_time = time

		self.events.append((time, message))


	def to_midi_file (self) -> mido.MidiFile:

		"""
		Build a type-1 MIDI file (480 ticks per beat) holding every recorded message.
		"""

		mid = mido.MidiFile(type=1, ticks_per_beat=TICKS_PER_BEAT)
		track = mido.MidiTrack()
		mid.tracks.append(track)

		midi_tempo = mido.bpm2tempo(self.tempo)
		track.append(mido.MetaMessage('set_tempo', tempo=midi_tempo, time=0))

		origin = self.start_time if self.start_time is not None else 0.0
		last_tick = 0

		# Stable sort keeps a note-off ahead of a note-on recorded for the same instant.
		for time, message in sorted(self.events, key=lambda item: item[0]):

			tick = int(round(mido.second2tick(max(0.0, time - origin), TICKS_PER_BEAT, midi_tempo)))
			delta = max(0, tick - last_tick)

			track.append(message.copy(time=delta))
			last_tick = tick

		return mid


	def save (self, filename: str) -> bool:

		"""Save the recording. Returns False when there is nothing to save or the write fails."""

		if not self.events:
			logger.warning("Nothing recorded, not saving")
			return False

		logger.info(f"Saving MIDI recording ({len(self.events)} events) to {filename}...")

		try:
			self.to_midi_file().save(filename)
			logger.info(f"Saved {filename}")
			return True

		except Exception as e:
			logger.error(f"Failed to save MIDI recording: {e}")
			return False


class MidiSink:

	"""
	Plays engine note events on a MIDI output.

	Note events arrive ahead of time, so each note_on is held back on the
	clock until its start time. Note-offs arrive when they are due and are
	sent straight away. Every sent message is also passed to ``recorder`` when
	one is given, which is how offline rendering works: a virtual clock, no
	port, and a recorder.

	Example:
		```python
		sink = MidiSink(clock, port=midi_out, channel=0)
		sink.attach(arpeggiator)
		```
	"""

	def __init__ (
		self,
		clock: arpline.clock.Clock,
		port: typing.Optional[typing.Any] = None,
		channel: int = 0,
		recorder: typing.Optional[MidiRecorder] = None
	) -> None:

		if not 0 <= channel <= 15:
			raise ValueError(f"MIDI channel must be 0-15, got {channel}")

		self.clock = clock
		self.port = port
		self.channel = channel
		self.recorder = recorder
		self._sounding: typing.Dict[int, int] = {}
		self._pending: typing.Dict[int, typing.Tuple[arpline.events.NoteEvent, arpline.clock.TimerHandle]] = {}
		self._pending_ids = itertools.count()


	def attach (self, engine: typing.Any) -> None:

		"""
		Subscribe to an engine's (or router's) ``"note"`` and ``"note_off"`` events.
		"""

		engine.events.on("note", self.handle_note)
		engine.events.on("note_off", self.handle_note_off)
		engine.events.on("all_notes_off", self.cancel_pending)


	def handle_note (self, event: arpline.events.NoteEvent) -> None:

		pending_id = next(self._pending_ids)

		def fire () -> None:

			if self._pending.pop(pending_id, None) is not None:
				self._send('note_on', event.pitch, event.velocity, event.time)

		self._pending[pending_id] = (event, self.clock.call_later(event.time - self.clock.now(), fire))


	def handle_note_off (self, event: arpline.events.NoteOff) -> None:

		"""Send a note-off, keeping it after the note-on it releases.

		The engine times its release separately from the held-back note-on, so
		a very short note can be released before its own note-on has fired.
		When nothing is sounding on the pitch but a note-on for it is still
		pending, that note-on is the one being released: it is sent first if its
		start time has been reached, otherwise both are dropped.
		"""

		now = self.clock.now()

		if not self._sounding.get(event.pitch):

			pending = self._take_pending(event.pitch)

			if pending is not None:

				if pending.time > event.time:
					return

				self._send('note_on', pending.pitch, pending.velocity, now)

		self._send('note_off', event.pitch, 0, now)


	def _take_pending (self, pitch: int) -> typing.Optional[arpline.events.NoteEvent]:

		"""
		Cancel and return the earliest pending note-on for ``pitch``, if any.
		"""

		candidates = [(event.time, pending_id) for pending_id, (event, _) in self._pending.items() if event.pitch == pitch]

		if not candidates:
			return None

		_, pending_id = min(candidates)
		event, handle = self._pending.pop(pending_id)
		handle.cancel()

		return event


	def cancel_pending (self) -> None:

		"""
		Drop note-ons still waiting for their start time (the engine has stopped).
		"""

		for _, handle in self._pending.values():
			handle.cancel()

		self._pending = {}


	def sounding (self) -> typing.List[int]:

		return sorted(self._sounding)


	def panic (self) -> None:

		"""
		Release every sounding note and send All Notes Off on this channel.
		"""

		logger.info("Panic: sending all notes off.")

		now = self.clock.now()

		for pitch in sorted(self._sounding):
			self._send('note_off', pitch, 0, now)

		self._sounding = {}
		self._output(mido.Message('control_change', channel=self.channel, control=123, value=0), now)


	def _send (self, message_type: str, pitch: int, velocity: int, when: float) -> None:

		if message_type == 'note_on':
			self._sounding[pitch] = self._sounding.get(pitch, 0) + 1

		else:
			count = self._sounding.get(pitch, 0)
			if count <= 1:
				self._sounding.pop(pitch, None)
			else:
				self._sounding[pitch] = count - 1

		self._output(mido.Message(message_type, channel=self.channel, note=pitch, velocity=velocity), when)


	def _output (self, message: mido.Message, when: float) -> None:

		if self.port is not None:
			try:
				self.port.send(message)
			except Exception:
				logger.exception("MIDI send failed (device may be disconnected)")

		if self.recorder is not None:
			self.recorder.record(when, message)
