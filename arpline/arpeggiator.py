import dataclasses
import enum
import logging
import random
import typing

import arpline.chords
import arpline.clock
import arpline.constants.durations
import arpline.constants.limits
import arpline.constants.timing
import arpline.constants.velocity
import arpline.event_emitter
import arpline.events
import arpline.patterns
import arpline.scheduler


logger = logging.getLogger(__name__)


class ArpParameter (enum.Enum):

	"""
	Arpeggiator controls addressable through :meth:`Arpeggiator.set_parameter`.
	"""

	PATTERN = "pattern"
	OCTAVES = "octaves"
	TEMPO = "tempo"
	DIVISION = "division"
	GATE_LENGTH = "gate_length"
	SWING = "swing"
	HUMANIZE = "humanize"
	NOTE_HOLD = "note_hold"


@dataclasses.dataclass
class ArpeggiatorConfig:

	"""
	Performance settings for an arpeggiator.

	Numeric fields are clamped into range on construction. ``pattern`` and
	``division`` accept either the enum or its string value. With
	``note_hold`` each note sustains until the next step starts, ignoring
	``gate_length``.
	"""

	pattern: arpline.patterns.PatternKind = arpline.patterns.PatternKind.UP
	octaves: int = 1
	tempo: float = arpline.constants.limits.DEFAULT_TEMPO
	division: arpline.constants.durations.NoteDivision = arpline.constants.durations.DEFAULT_DIVISION
	gate_length: float = arpline.constants.limits.DEFAULT_GATE_LENGTH
	swing: float = 0.0
	humanize: float = 0.0
	note_hold: bool = False


	def __post_init__ (self) -> None:

		limits = arpline.constants.limits

		self.pattern = arpline.patterns.PatternKind(self.pattern)
		self.division = arpline.constants.durations.NoteDivision(self.division)
		self.octaves = int(limits.clamp(int(self.octaves), limits.MIN_OCTAVES, limits.MAX_OCTAVES))
		self.tempo = float(limits.clamp(float(self.tempo), limits.MIN_TEMPO, limits.MAX_TEMPO))
		self.gate_length = float(limits.clamp(float(self.gate_length), 0.0, 1.0))
		self.swing = float(limits.clamp(float(self.swing), 0.0, 1.0))
		self.humanize = float(limits.clamp(float(self.humanize), 0.0, 1.0))
		self.note_hold = bool(self.note_hold)


	@classmethod
	def from_dict (cls, data: typing.Optional[typing.Mapping[str, typing.Any]]) -> "ArpeggiatorConfig":

		"""Build a config from a mapping such as a parsed YAML section.

		Unknown keys are logged and ignored. Invalid pattern or division names
		raise ``ValueError``.

		Example:
			```python
			ArpeggiatorConfig.from_dict({"pattern": "upDown", "tempo": 96, "division": "1/8T"})
			```
		"""

		if not data:
			return cls()

		known = {field.name for field in dataclasses.fields(cls)}

		for key in data:
			if key not in known:
				logger.warning(f"Ignoring unknown arpeggiator setting {key!r}")

		return cls(**{key: value for key, value in data.items() if key in known})


class Arpeggiator:

	"""
	Plays held notes as a timed, repeating pattern.

	The arpeggiator turns its held notes into a sequence with
	:func:`arpline.patterns.generate_sequence` and steps through it on a
	:class:`arpline.scheduler.LookaheadScheduler`. Each step is announced to
	``"note"`` listeners as a :class:`arpline.events.NoteEvent` a little ahead
	of its start time, and the matching :class:`arpline.events.NoteOff` is
	delivered to ``"note_off"`` listeners when the gate closes.

	Notes come from :meth:`set_notes`, from live keys via :meth:`note_on` /
	:meth:`note_off`, from a catalog chord via :meth:`set_chord`, or from a
	chord progression via :meth:`load_progression`, which moves to the next
	chord every ``bars_per_chord`` completed cycles.

	Example:
		```python
		arp = Arpeggiator(clock, ArpeggiatorConfig(pattern="upDown", octaves=2))
		arp.on_note(lambda event: print(event.pitch, event.time))
		arp.set_chord(60, "minor7")
		arp.start()
		```
	"""

	def __init__ (
		self,
		clock: arpline.clock.Clock,
		config: typing.Optional[ArpeggiatorConfig] = None,
		catalog: arpline.chords.ChordCatalog = arpline.chords.DEFAULT_CATALOG,
		rng: typing.Optional[random.Random] = None,
		auto_start: bool = False,
		lookahead: float = arpline.constants.timing.LOOKAHEAD_SECONDS,
		poll_interval: float = arpline.constants.timing.POLL_INTERVAL_SECONDS
	) -> None:

		"""Create a stopped arpeggiator with no held notes.

		Parameters:
			clock: Host clock used for timing.
			config: Initial settings (copied). Defaults to ``ArpeggiatorConfig()``.
			catalog: Chord and progression tables for :meth:`set_chord` and
				:meth:`load_progression`.
			rng: Random source for the ``random``/``shuffle`` patterns and for
				humanization. Pass a seeded ``random.Random`` for repeatable runs.
			auto_start: When True, :meth:`note_on` starts playback on the first
				key and :meth:`note_off` stops it when the last key is released.
			lookahead: Scheduler look-ahead window in seconds.
			poll_interval: Scheduler poll period in seconds.
		"""

		self.clock = clock
		self.config = dataclasses.replace(config) if config is not None else ArpeggiatorConfig()
		self.catalog = catalog
		self.rng = rng if rng is not None else random.Random()
		self.auto_start = auto_start
		self.events = arpline.event_emitter.EventEmitter()

		self._held: typing.List[int] = []
		self._velocity = arpline.constants.velocity.DEFAULT_VELOCITY
		self._sequence: typing.List[int] = []
		self._position = 0
		self._steps_played = 0
		self._running = False
		self._paused = False

		# Pitch -> number of overlapping sounding instances.
		self._active: typing.Dict[int, int] = {}

		self._progression: typing.Optional[arpline.chords.Progression] = None
		self._progression_root = 60
		self._chord_index = 0
		self._bars_per_chord = arpline.constants.limits.MIN_BARS_PER_CHORD
		self._cycles_on_chord = 0

		self._scheduler = arpline.scheduler.LookaheadScheduler(
			clock,
			self._schedule_event,
			lookahead = lookahead,
			poll_interval = poll_interval,
			name = "arpeggiator"
		)


	# -- Listeners ------------------------------------------------------------

	def on_note (self, callback: typing.Callable[[arpline.events.NoteEvent], typing.Any]) -> None:

		self.events.on("note", callback)


	def on_note_off (self, callback: typing.Callable[[arpline.events.NoteOff], typing.Any]) -> None:

		self.events.on("note_off", callback)


	def on_cycle_complete (self, callback: typing.Callable[[], typing.Any]) -> None:

		"""
		Register a callback fired each time the sequence wraps back to its start.
		"""

		self.events.on("cycle_complete", callback)


	# -- State ----------------------------------------------------------------

	@property
	def position (self) -> int:

		"""
		Index of the sequence entry the next step will play.
		"""

		return self._position


	@property
	def is_running (self) -> bool:

		return self._running


	@property
	def is_paused (self) -> bool:

		return self._paused


	def get_sequence (self) -> typing.List[int]:

		return list(self._sequence)


	def get_notes (self) -> typing.List[int]:

		return list(self._held)


	def active_notes (self) -> typing.List[int]:

		"""
		Return the pitches currently sounding (note-on sent, note-off not yet sent).
		"""

		return sorted(self._active)


	# -- Notes ----------------------------------------------------------------

	def set_notes (self, notes: typing.Iterable[int]) -> None:

		"""
		Replace the held notes.

		Notes outside 0-127 are dropped with a warning. The sequence is
		regenerated and, if playing, restarts from its first entry on the next
		step. An active progression is left in place and will replace these
		notes at its next chord change.
		"""

		valid: typing.List[int] = []

		for note in notes:
			if arpline.constants.limits.MIN_NOTE <= note <= arpline.constants.limits.MAX_NOTE:
				valid.append(int(note))
			else:
				logger.warning(f"Ignoring out-of-range note {note!r}")

		self._held = sorted(set(valid))
		self._regenerate()


	def note_on (self, pitch: int, velocity: int = arpline.constants.velocity.DEFAULT_VELOCITY) -> None:

		"""Add a live key to the held notes.

		The key's velocity becomes the velocity of every arpeggiated note until
		the next key press. Playback starts here when ``auto_start`` is set.
		"""

		self._velocity = int(arpline.constants.limits.clamp(
			velocity,
			arpline.constants.velocity.MIN_VELOCITY,
			arpline.constants.velocity.MAX_VELOCITY
		))

		if pitch in self._held:
			return

		self.set_notes(self._held + [pitch])

		if self.auto_start and self._held and not self._running:
			self.start()


	def note_off (self, pitch: int) -> None:

		"""
		Remove a live key from the held notes (stopping playback on the last key when ``auto_start`` is set).
		"""

		if pitch not in self._held:
			return

		self.set_notes([note for note in self._held if note != pitch])

		if self.auto_start and not self._held:
			self.stop()


	def set_chord (self, root: int, name: str) -> typing.Optional[typing.List[int]]:

		"""Hold the notes of a catalog chord built on ``root``.

		Returns the held notes, or ``None`` (and changes nothing) if the chord
		name is unknown.

		Example:
			```python
			arp.set_chord(57, "minor")  # → [57, 60, 64]
			```
		"""

		notes = self.catalog.chord_notes(name, root)

		if notes is None:
			logger.warning(f"Unknown chord {name!r}")
			return None

		self.set_notes(notes)

		return self.get_notes()


	def load_progression (
		self,
		name: str,
		root: int = 60,
		bars_per_chord: int = arpline.constants.limits.MIN_BARS_PER_CHORD
	) -> typing.Optional[typing.List[int]]:

		"""Start following a chord progression.

		The first chord is held immediately. After every ``bars_per_chord``
		completed cycles (clamped to 1-8) the next chord replaces the held
		notes, wrapping back to the first chord at the end.

		Returns the first chord's notes, or ``None`` (and changes nothing) if
		the progression is unknown.

		Example:
			```python
			arp.load_progression("jazz-ii-v-i", root=60, bars_per_chord=2)
			# → [62, 65, 69, 72]
			```
		"""

		progression = self.catalog.get_progression(name)

		if progression is None:
			logger.warning(f"Unknown progression {name!r}")
			return None

		limits = arpline.constants.limits

		self._progression = progression
		self._progression_root = root
		self._chord_index = 0
		self._cycles_on_chord = 0
		self._bars_per_chord = int(limits.clamp(int(bars_per_chord), limits.MIN_BARS_PER_CHORD, limits.MAX_BARS_PER_CHORD))

		self.set_notes(progression.chord_tones(root, 0))

		logger.info(f"Loaded progression {progression.title!r} at root {root}, {self._bars_per_chord} bar(s) per chord")

		return self.get_notes()


	def clear_progression (self) -> None:

		"""
		Stop following the progression, keeping the current chord held.
		"""

		self._progression = None
		self._chord_index = 0
		self._cycles_on_chord = 0


	def get_progression (self) -> typing.Optional[str]:

		return self._progression.key if self._progression is not None else None


	def get_chord_index (self) -> int:

		return self._chord_index


	def get_bars_per_chord (self) -> int:

		return self._bars_per_chord


	# -- Settings -------------------------------------------------------------

	def set_pattern (self, pattern: typing.Union[arpline.patterns.PatternKind, str]) -> bool:

		"""
		Change the pattern. Returns False (and changes nothing) for an unknown pattern name.
		"""

		try:
			kind = arpline.patterns.PatternKind(pattern)

		except ValueError:
			logger.warning(f"Unknown arpeggio pattern {pattern!r}")
			return False

		self.config.pattern = kind
		self._regenerate()

		return True


	def get_pattern (self) -> arpline.patterns.PatternKind:

		return self.config.pattern


	def set_octaves (self, octaves: int) -> None:

		limits = arpline.constants.limits

		self.config.octaves = int(limits.clamp(int(octaves), limits.MIN_OCTAVES, limits.MAX_OCTAVES))
		self._regenerate()


	def get_octaves (self) -> int:

		return self.config.octaves


	def set_tempo (self, bpm: float) -> None:

		"""
		Set the tempo (clamped to 40-300 BPM). Takes effect from the next step.
		"""

		limits = arpline.constants.limits

		self.config.tempo = float(limits.clamp(float(bpm), limits.MIN_TEMPO, limits.MAX_TEMPO))


	def get_tempo (self) -> float:

		return self.config.tempo


	def set_division (self, division: typing.Union[arpline.constants.durations.NoteDivision, str]) -> bool:

		try:
			self.config.division = arpline.constants.durations.NoteDivision(division)

		except ValueError:
			logger.warning(f"Unknown note division {division!r}")
			return False

		return True


	def get_division (self) -> arpline.constants.durations.NoteDivision:

		return self.config.division


	def set_gate_length (self, gate: float) -> None:

		self.config.gate_length = float(arpline.constants.limits.clamp(float(gate), 0.0, 1.0))


	def get_gate_length (self) -> float:

		return self.config.gate_length


	def set_swing (self, swing: float) -> None:

		self.config.swing = float(arpline.constants.limits.clamp(float(swing), 0.0, 1.0))


	def get_swing (self) -> float:

		return self.config.swing


	def set_humanize (self, amount: float) -> None:

		self.config.humanize = float(arpline.constants.limits.clamp(float(amount), 0.0, 1.0))


	def get_humanize (self) -> float:

		return self.config.humanize


	def set_note_hold (self, enabled: bool) -> None:

		"""
		Sustain each note until the next step starts instead of releasing it after the gate.
		"""

		self.config.note_hold = bool(enabled)


	def get_note_hold (self) -> bool:

		return self.config.note_hold


	def set_parameter (self, parameter: typing.Union[ArpParameter, str], value: typing.Any) -> bool:

		"""Set a control by name.

		Returns False when the parameter or its value is not recognised.

		Example:
			```python
			arp.set_parameter(ArpParameter.SWING, 0.3)
			arp.set_parameter("pattern", "converge")
			```
		"""

		try:
			parameter = ArpParameter(parameter)

		except ValueError:
			logger.warning(f"Unknown arpeggiator parameter {parameter!r}")
			return False

		setters: typing.Dict[ArpParameter, typing.Callable[[typing.Any], typing.Optional[bool]]] = {
			ArpParameter.PATTERN: self.set_pattern,
			ArpParameter.OCTAVES: self.set_octaves,
			ArpParameter.TEMPO: self.set_tempo,
			ArpParameter.DIVISION: self.set_division,
			ArpParameter.GATE_LENGTH: self.set_gate_length,
			ArpParameter.SWING: self.set_swing,
			ArpParameter.HUMANIZE: self.set_humanize,
			ArpParameter.NOTE_HOLD: self.set_note_hold,
		}

		return setters[parameter](value) is not False


	# -- Transport ------------------------------------------------------------

	def start (self) -> None:

		"""
		Start playback from the first sequence entry.

		The first step is emitted before this call returns. Calling start while
		already running does nothing.
		"""

		if self._running:
			return

		self._release_all()

		self._running = True
		self._paused = False
		self._position = 0
		self._steps_played = 0

		logger.info(f"Arpeggiator started ({self.config.pattern.value}, {self.config.tempo:g} BPM)")

		self._scheduler.start()


	def stop (self) -> None:

		"""
		Stop playback, release sounding notes and return to the first entry.
		"""

		was_active = self._running or self._paused

		self._scheduler.stop()
		self._release_all()

		self._running = False
		self._paused = False
		self._position = 0
		self._steps_played = 0

		if was_active:
			logger.info("Arpeggiator stopped")


	def pause (self) -> None:

		"""
		Halt playback, keeping the current position for :meth:`resume`.
		"""

		if not self._running:
			return

		self._scheduler.stop()
		self._release_all()

		self._running = False
		self._paused = True


	def resume (self) -> None:

		"""
		Continue from the paused position; the next step plays immediately.
		"""

		if not self._paused:
			return

		self._paused = False
		self._running = True

		self._scheduler.start()


	def reset (self) -> None:

		"""
		Return to the first sequence entry without stopping.
		"""

		self._position = 0
		self._steps_played = 0


	def dispose (self) -> None:

		"""
		Stop playback and drop every listener.
		"""

		self.stop()
		self.events.clear()


	# -- Playback -------------------------------------------------------------

	def _regenerate (self) -> None:

		self._sequence = arpline.patterns.generate_sequence(
			self._held,
			self.config.octaves,
			self.config.pattern,
			rng = self.rng
		)

		self._position = 0


	def _schedule_event (self, event_time: float) -> float:

		"""
		Emit the step due at ``event_time`` and return the time until the next one.
		"""

		duration = arpline.scheduler.swing_duration(
			arpline.scheduler.step_duration(self.config.tempo, self.config.division),
			self._steps_played,
			self.config.swing
		)

		self._steps_played += 1

		if not self._sequence:
			return duration

		sequence = self._sequence

		if arpline.patterns.is_strike(self.config.pattern):
			pitches = list(sequence)
		else:
			pitches = [sequence[self._position]]

		for pitch in pitches:
			self._play(pitch, event_time, duration)

		# A note listener may have stopped playback or replaced the notes, in
		# which case the new sequence already starts from its first entry.
		if not self._running or self._sequence is not sequence:
			return duration

		self._advance()

		return duration


	def _play (self, pitch: int, event_time: float, duration: float) -> None:

		if pitch > arpline.constants.limits.MAX_NOTE:
			logger.debug(f"Skipping note {pitch} above the MIDI range")
			return

		velocity, offset = arpline.scheduler.humanize(
			self._velocity,
			self.config.humanize,
			self.rng
		)

		start = max(event_time + offset, self.clock.now())
		next_step = event_time + duration

		if self.config.note_hold:
			gate = 1.0
			end = max(next_step, start)
		else:
			gate = self.config.gate_length
			end = max(arpline.scheduler.release_time(start, duration, gate, next_step), start)

		self._active[pitch] = self._active.get(pitch, 0) + 1

		self.events.emit("note", arpline.events.NoteEvent(
			pitch = pitch,
			velocity = velocity,
			gate = gate,
			time = start,
			duration = end - start
		))

		self._scheduler.call_at(end, lambda: self._release(pitch, end))


	def _release (self, pitch: int, when: float) -> None:

		count = self._active.get(pitch, 0)

		if count == 0:
			return

		if count == 1:
			del self._active[pitch]
		else:
			self._active[pitch] = count - 1

		self.events.emit("note_off", arpline.events.NoteOff(pitch=pitch, time=when))


	def _release_all (self) -> None:

		"""
		Send an immediate note-off for every sounding note.
		"""

		if not self._active:
			return

		now = self.clock.now()
		sounding = sorted(self._active)
		self._active = {}

		for pitch in sounding:
			self.events.emit("note_off", arpline.events.NoteOff(pitch=pitch, time=now))

		self.events.emit("all_notes_off")


	def _advance (self) -> None:

		if not self._sequence:
			self._position = 0
			return

		if arpline.patterns.is_strike(self.config.pattern):
			self._position = 0
		else:
			self._position = (self._position + 1) % len(self._sequence)

		if self._position == 0:
			self._complete_cycle()


	def _complete_cycle (self) -> None:

		self.events.emit("cycle_complete")

		# A listener may have stopped playback.
		if not self._running:
			return

		if self._progression is not None:

			self._cycles_on_chord += 1

			if self._cycles_on_chord >= self._bars_per_chord:

				self._cycles_on_chord = 0
				self._chord_index = (self._chord_index + 1) % len(self._progression)
				self.set_notes(self._progression.chord_tones(self._progression_root, self._chord_index))

				logger.debug(f"Progression {self._progression.key!r} moved to chord {self._chord_index}")
				return

		if self.config.pattern in (arpline.patterns.PatternKind.RANDOM, arpline.patterns.PatternKind.SHUFFLE):
			self._regenerate()
