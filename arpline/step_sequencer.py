"""Grid step sequencer.

A :class:`StepSequencer` owns a grid of 4-64 :class:`SequencerStep` entries
and walks it in one of four playback modes:

  Mode       │ Order (8 steps)              │ "pattern_complete" fires
  ───────────┼──────────────────────────────┼───────────────────────────
  forward    │ 0 1 2 ... 7 0 1 ...          │ on wrapping to 0
  reverse    │ 0 7 6 ... 1 0 7 ...          │ on wrapping to 7
  pingpong   │ 0 1 ... 7 6 ... 1 0 1 ...    │ on returning to 0
  random     │ any                          │ never

Every step is announced to ``"step"`` listeners (for playhead display);
steps whose gate is on also produce a ``"note"`` event and, when the step's
length elapses, a ``"note_off"``.

Step pitches are either note numbers (``PitchMode.ABSOLUTE``) or intervals
above a root that live input sets (``PitchMode.RELATIVE``), so one grid can be
transposed by playing different keys.

Recording writes live notes into consecutive steps from step 0 and stops by
itself once the last step is filled.
"""

import dataclasses
import enum
import logging
import random
import typing

import arpline.clock
import arpline.constants.durations
import arpline.constants.limits
import arpline.constants.timing
import arpline.constants.velocity
import arpline.event_emitter
import arpline.events
import arpline.scheduler


logger = logging.getLogger(__name__)


DEFAULT_STEP_PITCH = 60
MAJOR_SCALE = (0, 2, 4, 5, 7, 9, 11)
BASSLINE_INTERVALS = (0, 7, 12, 7)


class PlaybackMode (enum.Enum):

	FORWARD = "forward"
	REVERSE = "reverse"
	PINGPONG = "pingpong"
	RANDOM = "random"


class PitchMode (enum.Enum):

	"""
	How a step's ``pitch`` is interpreted.
	"""

	ABSOLUTE = "absolute"
	RELATIVE = "relative"


class SeqParameter (enum.Enum):

	"""
	Sequencer controls addressable through :meth:`StepSequencer.set_parameter`.
	"""

	STEPS = "steps"
	TEMPO = "tempo"
	SWING = "swing"
	MODE = "mode"
	DIVISION = "division"
	PITCH_MODE = "pitch_mode"
	ROOT_NOTE = "root_note"
	NOTE_HOLD = "note_hold"


@dataclasses.dataclass
class SequencerStep:

	"""
	One cell of the grid.

	``velocity`` is clamped to 1-127 and ``length`` (fraction of the step the
	note sounds for) to 0.01-1.
	"""

	gate: bool = False
	pitch: int = DEFAULT_STEP_PITCH
	velocity: int = arpline.constants.velocity.DEFAULT_VELOCITY
	length: float = arpline.constants.limits.DEFAULT_GATE_LENGTH


	def __post_init__ (self) -> None:

		self.gate = bool(self.gate)
		self.pitch = int(self.pitch)

		self.velocity = int(round(arpline.constants.limits.clamp(
			self.velocity,
			arpline.constants.velocity.MIN_VELOCITY,
			arpline.constants.velocity.MAX_VELOCITY
		)))

		self.length = float(arpline.constants.limits.clamp(
			self.length,
			arpline.constants.limits.MIN_STEP_LENGTH,
			arpline.constants.limits.MAX_STEP_LENGTH
		))


	def copy (self) -> "SequencerStep":

		return dataclasses.replace(self)


STEP_FIELDS = frozenset(field.name for field in dataclasses.fields(SequencerStep))


class PatternBank:

	"""
	In-memory store of named grids.

	A bank can be shared by several sequencers; each one saves copies in and
	loads copies out, so no grid is ever aliased between sequencers.
	"""

	def __init__ (self) -> None:

		self._patterns: typing.Dict[str, typing.List[SequencerStep]] = {}


	def save (self, name: str, steps: typing.Sequence[SequencerStep]) -> None:

		self._patterns[name] = [step.copy() for step in steps]


	def load (self, name: str) -> typing.Optional[typing.List[SequencerStep]]:

		if name not in self._patterns:
			return None

		return [step.copy() for step in self._patterns[name]]


	def delete (self, name: str) -> bool:

		if name not in self._patterns:
			return False

		del self._patterns[name]

		return True


	def names (self) -> typing.List[str]:

		return list(self._patterns.keys())


	def __contains__ (self, name: object) -> bool:

		return name in self._patterns


	def __len__ (self) -> int:

		return len(self._patterns)


class StepSequencer:

	"""
	Plays a grid of steps on a look-ahead scheduler.

	Example:
		```python
		seq = StepSequencer(clock, steps=8, tempo=128)
		seq.fill_bassline()
		seq.set_pitch_mode(PitchMode.RELATIVE)
		seq.on_note(lambda event: print(event.pitch))
		seq.note_on(36)   # sets the root
		seq.start()
		```
	"""

	def __init__ (
		self,
		clock: arpline.clock.Clock,
		steps: int = arpline.constants.limits.DEFAULT_STEP_COUNT,
		tempo: float = arpline.constants.limits.DEFAULT_TEMPO,
		swing: float = 0.0,
		mode: typing.Union[PlaybackMode, str] = PlaybackMode.FORWARD,
		division: typing.Union[arpline.constants.durations.NoteDivision, str] = arpline.constants.durations.DEFAULT_DIVISION,
		pitch_mode: typing.Union[PitchMode, str] = PitchMode.ABSOLUTE,
		root_note: typing.Optional[int] = None,
		note_hold: bool = False,
		auto_start: bool = False,
		bank: typing.Optional[PatternBank] = None,
		rng: typing.Optional[random.Random] = None,
		lookahead: float = arpline.constants.timing.LOOKAHEAD_SECONDS,
		poll_interval: float = arpline.constants.timing.POLL_INTERVAL_SECONDS
	) -> None:

		"""Create a stopped sequencer with an empty grid.

		Parameters:
			clock: Host clock used for timing.
			steps: Grid size, one of 4, 8, 16, 32 or 64 (anything else gives 16).
			tempo: BPM, clamped to 40-300.
			swing: 0-1, lengthens odd steps by up to half a step.
			mode: Playback order.
			division: Length of one step.
			pitch_mode: Whether step pitches are note numbers or intervals.
			root_note: Root for relative pitch mode until a key is played.
			note_hold: When True, releasing the root key keeps it as the root.
			auto_start: When True, a key press starts playback and releasing
				the root key (without note hold) stops it.
			bank: Pattern store for save/load. A private bank is created when
				omitted.
			rng: Random source for ``random`` mode and grid generators.
			lookahead: Scheduler look-ahead window in seconds.
			poll_interval: Scheduler poll period in seconds.
		"""

		self.clock = clock
		self.bank = bank if bank is not None else PatternBank()
		self.rng = rng if rng is not None else random.Random()
		self.note_hold = note_hold
		self.auto_start = auto_start
		self.events = arpline.event_emitter.EventEmitter()

		self._step_count = self._valid_step_count(steps)
		self._steps: typing.List[SequencerStep] = [SequencerStep() for _ in range(self._step_count)]

		limits = arpline.constants.limits

		self._tempo = float(limits.clamp(float(tempo), limits.MIN_TEMPO, limits.MAX_TEMPO))
		self._swing = float(limits.clamp(float(swing), 0.0, 1.0))
		self._mode = PlaybackMode(mode)
		self._division = arpline.constants.durations.NoteDivision(division)
		self._pitch_mode = PitchMode(pitch_mode)
		self._base_root = root_note
		self._root_note = root_note

		self._position = 0
		self._direction = 1
		self._hold_position = False
		self._running = False
		self._paused = False

		self._recording = False
		self._record_cursor = 0
		self._record_root: typing.Optional[int] = None

		self._active: typing.Dict[int, int] = {}

		self._scheduler = arpline.scheduler.LookaheadScheduler(
			clock,
			self._schedule_event,
			lookahead = lookahead,
			poll_interval = poll_interval,
			name = "step-sequencer"
		)


	# -- Listeners ------------------------------------------------------------

	def on_step (self, callback: typing.Callable[[int, SequencerStep, float], typing.Any]) -> None:

		"""
		Register a callback receiving ``(index, step, time)`` for every step played.
		"""

		self.events.on("step", callback)


	def on_note (self, callback: typing.Callable[[arpline.events.NoteEvent], typing.Any]) -> None:

		self.events.on("note", callback)


	def on_note_off (self, callback: typing.Callable[[arpline.events.NoteOff], typing.Any]) -> None:

		self.events.on("note_off", callback)


	def on_pattern_complete (self, callback: typing.Callable[[], typing.Any]) -> None:

		self.events.on("pattern_complete", callback)


	# -- State ----------------------------------------------------------------

	@property
	def position (self) -> int:

		"""
		Index of the most recently played step (0 when stopped).
		"""

		return self._position


	@property
	def direction (self) -> int:

		return self._direction


	@property
	def is_running (self) -> bool:

		return self._running


	@property
	def is_paused (self) -> bool:

		return self._paused


	@property
	def is_recording (self) -> bool:

		return self._recording


	@property
	def record_cursor (self) -> int:

		return self._record_cursor


	def active_notes (self) -> typing.List[int]:

		return sorted(self._active)


	# -- Grid -----------------------------------------------------------------

	@staticmethod
	def _valid_step_count (count: int) -> int:

		if count not in arpline.constants.limits.VALID_STEP_COUNTS:
			logger.warning(f"Invalid step count {count!r}, using {arpline.constants.limits.DEFAULT_STEP_COUNT}")
			return arpline.constants.limits.DEFAULT_STEP_COUNT

		return count


	def set_steps (self, count: int) -> None:

		"""
		Resize the grid, keeping the overlapping steps. New steps start with the gate off.
		"""

		count = self._valid_step_count(count)
		kept = self._steps[:count]

		self._steps = kept + [SequencerStep() for _ in range(count - len(kept))]
		self._step_count = count
		self._position = min(self._position, count - 1)

		if self._recording and self._record_cursor >= count:
			self.stop_recording()


	def get_step_count (self) -> int:

		return self._step_count


	def set_step (self, index: int, **fields: typing.Any) -> bool:

		"""Update some fields of one step.

		Returns False (and changes nothing) for an out-of-range index, an
		unknown field or a value that is not a number.

		Example:
			```python
			seq.set_step(4, gate=True, pitch=67, velocity=110)
			```
		"""

		if not 0 <= index < self._step_count:
			return False

		unknown = set(fields) - STEP_FIELDS

		if unknown:
			logger.warning(f"Ignoring step update with unknown field(s) {sorted(unknown)}")
			return False

		try:
			self._steps[index] = dataclasses.replace(self._steps[index], **fields)

		except (TypeError, ValueError):
			logger.warning(f"Invalid step values {fields!r}")
			return False

		return True


	def get_step (self, index: int) -> typing.Optional[SequencerStep]:

		if not 0 <= index < self._step_count:
			return None

		return self._steps[index].copy()


	def get_steps (self) -> typing.List[SequencerStep]:

		return [step.copy() for step in self._steps]


	def set_pattern (self, steps: typing.Sequence[SequencerStep]) -> bool:

		"""
		Replace the whole grid. Rejected (returns False) unless the length matches the step count.
		"""

		if len(steps) != self._step_count:
			logger.warning(f"Pattern length {len(steps)} does not match step count {self._step_count}")
			return False

		self._steps = [step.copy() for step in steps]

		return True


	def clear (self) -> None:

		"""
		Turn every gate off, keeping pitches, velocities and lengths.
		"""

		for step in self._steps:
			step.gate = False


	def randomize (self, density: float = 0.5) -> None:

		"""
		Fill the grid with random gates, pitches and velocities.

		Each gate is on with probability ``density``. Pitches are note numbers
		48-71 in absolute mode or intervals -12..12 in relative mode.
		Velocities are 64-127.
		"""

		for step in self._steps:

			step.gate = self.rng.random() < density

			if self._pitch_mode is PitchMode.RELATIVE:
				step.pitch = self.rng.randint(-12, 12)
			else:
				step.pitch = self.rng.randint(48, 71)

			step.velocity = self.rng.randint(
				arpline.constants.velocity.RANDOM_VELOCITY_LOW,
				arpline.constants.velocity.RANDOM_VELOCITY_HIGH
			)


	def _fill (self, pitches: typing.Sequence[int], velocities: typing.Sequence[int], length: float) -> None:

		base = 0 if self._pitch_mode is PitchMode.RELATIVE else (self._root_note if self._root_note is not None else DEFAULT_STEP_PITCH)

		for index in range(self._step_count):
			self._steps[index] = SequencerStep(
				gate = True,
				pitch = base + pitches[index % len(pitches)],
				velocity = velocities[index % len(velocities)],
				length = length
			)


	def fill_bassline (self) -> None:

		"""
		Fill every step with a root, fifth, octave, fifth figure.

		In relative mode the steps hold intervals; in absolute mode they are
		built on the root note (middle C when none is set).
		"""

		self._fill(BASSLINE_INTERVALS, [110], arpline.constants.limits.DEFAULT_GATE_LENGTH)


	def fill_melodic (self, scale: typing.Sequence[int] = MAJOR_SCALE) -> None:

		"""
		Fill every step by walking up ``scale`` (semitone offsets), accenting odd steps.
		"""

		if not scale:
			logger.warning("Cannot fill from an empty scale")
			return

		self._fill(scale, [100, 110], arpline.constants.limits.DEFAULT_GATE_LENGTH)


	def fill_generative (self, scale: typing.Sequence[int] = MAJOR_SCALE) -> None:

		"""
		Fill the grid with a random, mostly stepwise line drawn from ``scale``.

		Starts on the first scale degree and moves at most two degrees per
		step. About four gates in five are on; velocities vary 90-119 and
		lengths 0.6-0.9.
		"""

		if not scale:
			logger.warning("Cannot fill from an empty scale")
			return

		base = 0 if self._pitch_mode is PitchMode.RELATIVE else (self._root_note if self._root_note is not None else DEFAULT_STEP_PITCH)
		degree = 0

		for index in range(self._step_count):

			if index > 0:
				low = max(0, degree - 2)
				high = min(len(scale) - 1, degree + 2)
				degree = self.rng.randint(low, high)

			self._steps[index] = SequencerStep(
				gate = self.rng.random() > 0.2,
				pitch = base + scale[degree],
				velocity = self.rng.randint(90, 119),
				length = 0.6 + self.rng.random() * 0.3
			)


	# -- Settings -------------------------------------------------------------

	def set_mode (self, mode: typing.Union[PlaybackMode, str]) -> bool:

		"""
		Change the playback mode and go back to step 0 (played next if running).
		"""

		try:
			self._mode = PlaybackMode(mode)

		except ValueError:
			logger.warning(f"Unknown playback mode {mode!r}")
			return False

		self.reset()

		return True


	def get_mode (self) -> PlaybackMode:

		return self._mode


	def set_tempo (self, bpm: float) -> None:

		limits = arpline.constants.limits

		self._tempo = float(limits.clamp(float(bpm), limits.MIN_TEMPO, limits.MAX_TEMPO))


	def get_tempo (self) -> float:

		return self._tempo


	def set_swing (self, swing: float) -> None:

		self._swing = float(arpline.constants.limits.clamp(float(swing), 0.0, 1.0))


	def get_swing (self) -> float:

		return self._swing


	def set_division (self, division: typing.Union[arpline.constants.durations.NoteDivision, str]) -> bool:

		try:
			self._division = arpline.constants.durations.NoteDivision(division)

		except ValueError:
			logger.warning(f"Unknown note division {division!r}")
			return False

		return True


	def get_division (self) -> arpline.constants.durations.NoteDivision:

		return self._division


	def set_pitch_mode (self, pitch_mode: typing.Union[PitchMode, str]) -> bool:

		try:
			self._pitch_mode = PitchMode(pitch_mode)

		except ValueError:
			logger.warning(f"Unknown pitch mode {pitch_mode!r}")
			return False

		return True


	def get_pitch_mode (self) -> PitchMode:

		return self._pitch_mode


	def set_root_note (self, note: typing.Optional[int]) -> None:

		"""
		Set the root used by relative pitch mode when no key is held.
		"""

		self._base_root = note
		self._root_note = note


	def get_root_note (self) -> typing.Optional[int]:

		return self._root_note


	def set_note_hold (self, enabled: bool) -> None:

		self.note_hold = bool(enabled)


	def set_parameter (self, parameter: typing.Union[SeqParameter, str], value: typing.Any) -> bool:

		"""
		Set a control by name. Returns False when the parameter or its value is not recognised.
		"""

		try:
			parameter = SeqParameter(parameter)

		except ValueError:
			logger.warning(f"Unknown sequencer parameter {parameter!r}")
			return False

		setters: typing.Dict[SeqParameter, typing.Callable[[typing.Any], typing.Optional[bool]]] = {
			SeqParameter.STEPS: self.set_steps,
			SeqParameter.TEMPO: self.set_tempo,
			SeqParameter.SWING: self.set_swing,
			SeqParameter.MODE: self.set_mode,
			SeqParameter.DIVISION: self.set_division,
			SeqParameter.PITCH_MODE: self.set_pitch_mode,
			SeqParameter.ROOT_NOTE: self.set_root_note,
			SeqParameter.NOTE_HOLD: self.set_note_hold,
		}

		return setters[parameter](value) is not False


	# -- Live input -----------------------------------------------------------

	def note_on (self, pitch: int, velocity: int = arpline.constants.velocity.DEFAULT_VELOCITY) -> None:

		"""
		Handle a live key.

		While recording the key is written to the grid. Otherwise it becomes the
		root for relative pitch mode and, with ``auto_start``, starts playback.
		"""

		if self._recording:
			self.record_note(pitch, velocity)
			return

		self._root_note = pitch

		if self.auto_start and not self._running:
			self.start()


	def note_off (self, pitch: int) -> None:

		if self._recording or self.note_hold or pitch != self._root_note:
			return

		self._root_note = self._base_root

		if self.auto_start:
			self.stop()


	# -- Recording ------------------------------------------------------------

	def start_recording (self, root: typing.Optional[int] = None) -> None:

		"""
		Stop playback, clear every gate and record from step 0.

		In relative pitch mode ``root`` is the note intervals are measured from;
		when omitted, the first recorded note becomes the root.
		"""

		self.stop()
		self.clear()

		self._recording = True
		self._record_cursor = 0
		self._record_root = root

		logger.info(f"Recording started ({self._step_count} steps)")


	def stop_recording (self) -> None:

		if not self._recording:
			return

		self._recording = False
		self._record_cursor = 0
		self._record_root = None

		logger.info("Recording stopped")


	def record_note (self, pitch: int, velocity: int = arpline.constants.velocity.DEFAULT_VELOCITY) -> bool:

		"""
		Write a note into the step under the record cursor and advance.

		Returns False when not recording.
		"""

		if not self._recording:
			return False

		if self._pitch_mode is PitchMode.RELATIVE:

			if self._record_root is None:
				self._record_root = pitch
				self._root_note = pitch

			value = pitch - self._record_root

		else:
			value = pitch

		self._steps[self._record_cursor] = dataclasses.replace(
			self._steps[self._record_cursor],
			gate = True,
			pitch = value,
			velocity = velocity
		)

		self._advance_record_cursor()

		return True


	def record_rest (self) -> bool:

		"""
		Write a silent step under the record cursor and advance.
		"""

		if not self._recording:
			return False

		self._steps[self._record_cursor].gate = False
		self._advance_record_cursor()

		return True


	def _advance_record_cursor (self) -> None:

		self.events.emit("record_step", self._record_cursor)
		self._record_cursor += 1

		if self._record_cursor >= self._step_count:
			logger.info("Recording complete, all steps filled")
			self.stop_recording()


	# -- Pattern bank ---------------------------------------------------------

	def save_pattern (self, name: str) -> None:

		self.bank.save(name, self._steps)


	def load_pattern (self, name: str) -> bool:

		"""
		Load a saved grid, resizing to its length. Returns False if no such pattern.
		"""

		steps = self.bank.load(name)

		if steps is None:
			logger.warning(f"No saved pattern named {name!r}")
			return False

		self.set_steps(len(steps))
		self._steps = steps

		return True


	def delete_pattern (self, name: str) -> bool:

		return self.bank.delete(name)


	def list_patterns (self) -> typing.List[str]:

		return self.bank.names()


	# -- Transport ------------------------------------------------------------

	def start (self) -> None:

		"""
		Start playback at step 0, which plays before this call returns.
		"""

		if self._running:
			return

		self._release_all()

		self._running = True
		self._paused = False
		self._position = 0
		self._direction = 1
		self._hold_position = True

		logger.info(f"Step sequencer started ({self._step_count} steps, {self._mode.value}, {self._tempo:g} BPM)")

		self._scheduler.start()


	def stop (self) -> None:

		was_active = self._running or self._paused

		self._scheduler.stop()
		self._release_all()

		self._running = False
		self._paused = False
		self._position = 0
		self._direction = 1
		self._hold_position = False

		if was_active:
			logger.info("Step sequencer stopped")


	def pause (self) -> None:

		if not self._running:
			return

		self._scheduler.stop()
		self._release_all()

		self._running = False
		self._paused = True


	def resume (self) -> None:

		"""
		Continue from the paused position; the following step plays immediately.
		"""

		if not self._paused:
			return

		self._paused = False
		self._running = True

		self._scheduler.start()


	def reset (self) -> None:

		"""
		Go back to step 0. While running, step 0 is the next step played.
		"""

		self._position = 0
		self._direction = 1
		self._hold_position = self._running


	def dispose (self) -> None:

		"""
		Stop playback and recording and drop every listener. The pattern bank is kept.
		"""

		self.stop()
		self.stop_recording()
		self.events.clear()


	# -- Playback -------------------------------------------------------------

	def _advance (self) -> None:

		count = self._step_count

		if self._mode is PlaybackMode.FORWARD:
			self._position = (self._position + 1) % count
			if self._position == 0:
				self.events.emit("pattern_complete")

		elif self._mode is PlaybackMode.REVERSE:
			self._position = (self._position - 1) % count
			if self._position == count - 1:
				self.events.emit("pattern_complete")

		elif self._mode is PlaybackMode.PINGPONG:
			self._position += self._direction
			if self._position >= count - 1:
				self._position = count - 1
				self._direction = -1
			elif self._position <= 0:
				self._position = 0
				self._direction = 1
				self.events.emit("pattern_complete")

		else:
			self._position = self.rng.randrange(count)


	def _schedule_event (self, event_time: float) -> float:

		if self._hold_position:
			self._hold_position = False
		else:
			self._advance()

			# A pattern_complete listener may have stopped playback.
			if not self._running:
				return 0.0

		index = self._position
		step = self._steps[index]

		duration = arpline.scheduler.swing_duration(
			arpline.scheduler.step_duration(self._tempo, self._division),
			index,
			self._swing
		)

		self.events.emit("step", index, step.copy(), event_time)

		if step.gate:
			self._play(step, event_time, duration)

		return duration


	def _resolve_pitch (self, value: int) -> typing.Optional[int]:

		if self._pitch_mode is PitchMode.RELATIVE:
			if self._root_note is None:
				return None
			value = self._root_note + value

		if not arpline.constants.limits.MIN_NOTE <= value <= arpline.constants.limits.MAX_NOTE:
			logger.debug(f"Skipping out-of-range note {value}")
			return None

		return value


	def _play (self, step: SequencerStep, event_time: float, duration: float) -> None:

		pitch = self._resolve_pitch(step.pitch)

		if pitch is None:
			return

		end = arpline.scheduler.release_time(event_time, duration, step.length, event_time + duration)

		self._active[pitch] = self._active.get(pitch, 0) + 1

		self.events.emit("note", arpline.events.NoteEvent(
			pitch = pitch,
			velocity = step.velocity,
			gate = step.length,
			time = event_time,
			duration = end - event_time
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

		if not self._active:
			return

		now = self.clock.now()
		sounding = sorted(self._active)
		self._active = {}

		for pitch in sounding:
			self.events.emit("note_off", arpline.events.NoteOff(pitch=pitch, time=now))

		self.events.emit("all_notes_off")
