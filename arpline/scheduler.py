"""Drift-resistant look-ahead transport shared by the arpeggiator and sequencer.

The host timer is coarse and jittery, so it is never used to *time* notes.
Instead a poll tick wakes every ``poll_interval`` seconds and queues every
event that falls due within the next ``lookahead`` seconds, handing each one
its exact start time. The next event time is accumulated from step durations
rather than read back from the timer, so timer jitter never becomes drift.

    poll ─┬──────────── poll ─┬──────────── poll ─┬────
          │<── lookahead ──>│ │<── lookahead ──>│ │
          e0     e1          e2   e3              ...

Each scheduler instance carries a generation counter. ``stop()`` bumps it and
every tick or one-shot created under an older generation does nothing when
it eventually fires, so a stopped or disposed engine can never emit late.
"""

import itertools
import logging
import random
import typing

import arpline.clock
import arpline.constants.durations
import arpline.constants.limits
import arpline.constants.timing
import arpline.constants.velocity


logger = logging.getLogger(__name__)


ScheduleEventFn = typing.Callable[[float], float]


def step_duration (tempo: float, division: arpline.constants.durations.NoteDivision) -> float:

	"""Return the nominal length of one step in seconds.

	Parameters:
		tempo: Beats (quarter notes) per minute.
		division: Rhythmic subdivision of one step.

	Example:
		```python
		step_duration(120, NoteDivision.SIXTEENTH)       # → 0.125
		step_duration(120, NoteDivision.EIGHTH_TRIPLET)  # → 0.1666...
		```
	"""

	if tempo <= 0:
		raise ValueError("Tempo must be positive")

	return 60.0 / tempo * arpline.constants.durations.DIVISION_BEATS[division]


def swing_duration (duration: float, index: int, swing: float) -> float:

	"""
	Lengthen odd-indexed steps by up to 50% of a step; even steps are untouched.
	"""

	if index % 2 == 1 and swing > 0:
		return duration * (1.0 + swing * arpline.constants.limits.MAX_SWING_STRETCH)

	return duration


def humanize (velocity: int, amount: float, rng: random.Random) -> typing.Tuple[int, float]:

	"""Perturb a velocity and a start time.

	Returns ``(velocity, offset_seconds)``. At ``amount = 1.0`` the velocity
	moves by up to ±10 and the start by up to ±10 ms. The velocity stays within
	1-127. At ``amount = 0`` nothing changes and no random numbers are drawn.
	"""

	if amount <= 0:
		return velocity, 0.0

	velocity_range = arpline.constants.velocity.HUMANIZE_VELOCITY_RANGE * amount
	timing_range = arpline.constants.timing.HUMANIZE_TIMING_SECONDS * amount

	jittered = velocity + (rng.random() - 0.5) * 2 * velocity_range
	offset = (rng.random() - 0.5) * 2 * timing_range

	jittered = int(round(arpline.constants.limits.clamp(
		jittered,
		arpline.constants.velocity.MIN_VELOCITY,
		arpline.constants.velocity.MAX_VELOCITY
	)))

	return jittered, offset


def release_time (start: float, duration: float, gate: float, next_step_time: float) -> float:

	"""
	Return when a note started at ``start`` should be released.

	The release falls ``duration * gate`` after the start but never after the
	next step begins.
	"""

	return min(start + duration * gate, next_step_time)


class LookaheadScheduler:

	"""
	Queues events slightly ahead of time on behalf of one engine.

	The engine supplies ``schedule_event(event_time)``, which emits whatever
	belongs at ``event_time``, advances the engine's own position, and returns
	the number of seconds until the following event.
	"""

	def __init__ (
		self,
		clock: arpline.clock.Clock,
		schedule_event: ScheduleEventFn,
		lookahead: float = arpline.constants.timing.LOOKAHEAD_SECONDS,
		poll_interval: float = arpline.constants.timing.POLL_INTERVAL_SECONDS,
		name: str = "scheduler"
	) -> None:

		"""Create a stopped scheduler.

		Parameters:
			clock: Host clock supplying ``now()`` and ``call_later()``.
			schedule_event: Engine hook described above.
			lookahead: How far ahead (seconds) events are queued.
			poll_interval: How often (seconds) the scheduler wakes. Must be
				positive and shorter than ``lookahead``.
			name: Label used in log messages.
		"""

		if poll_interval <= 0:
			raise ValueError("Poll interval must be positive")

		if poll_interval >= lookahead:
			raise ValueError("Poll interval must be shorter than the look-ahead window")

		self.clock = clock
		self.lookahead = lookahead
		self.poll_interval = poll_interval
		self.name = name
		self.next_event_time = 0.0

		self._schedule_event = schedule_event
		self._generation = 0
		self._running = False
		self._poll_handle: typing.Optional[arpline.clock.TimerHandle] = None
		self._pending: typing.Dict[int, arpline.clock.TimerHandle] = {}
		self._pending_ids = itertools.count()


	@property
	def running (self) -> bool:

		return self._running


	@property
	def generation (self) -> int:

		return self._generation


	def pending_count (self) -> int:

		"""
		Return the number of one-shots (e.g. note-offs) still waiting to fire.
		"""

		return len(self._pending)


	def start (self, first_event_time: typing.Optional[float] = None) -> None:

		"""
		Start (or restart) the transport and run the first tick immediately.

		The first event is placed at ``first_event_time``, or at ``now()`` when
		omitted, so it is emitted before this call returns.
		"""

		self.stop()

		self._running = True
		self.next_event_time = self.clock.now() if first_event_time is None else first_event_time

		logger.debug(f"{self.name}: started at {self.next_event_time:.4f} (generation {self._generation})")

		self._tick(self._generation)


	def stop (self) -> None:

		"""
		Stop the transport and cancel the poll tick and every pending one-shot.
		"""

		self._generation += 1
		self._running = False

		if self._poll_handle is not None:
			self._poll_handle.cancel()
			self._poll_handle = None

		for handle in self._pending.values():
			handle.cancel()

		self._pending = {}


	def call_at (self, when: float, callback: typing.Callable[[], typing.Any]) -> None:

		"""
		Run ``callback`` at clock time ``when`` unless the scheduler is stopped first.
		"""

		generation = self._generation
		timer_id = next(self._pending_ids)

		def fire () -> None:

			self._pending.pop(timer_id, None)

			if generation != self._generation:
				return

			callback()

		self._pending[timer_id] = self.clock.call_later(when - self.clock.now(), fire)


	def _tick (self, generation: int) -> None:

		"""
		Queue every event inside the look-ahead window, then re-arm.
		"""

		if generation != self._generation:
			return

		self._poll_handle = None
		now = self.clock.now()

		if self.next_event_time < now - arpline.constants.timing.RESYNC_THRESHOLD_SECONDS:
			logger.warning(f"{self.name}: fell behind by {now - self.next_event_time:.3f}s, resyncing")
			self.next_event_time = now

		horizon = now + self.lookahead

		while self.next_event_time < horizon:

			duration = self._schedule_event(self.next_event_time)

			# The engine stopped or restarted us from inside its own hook.
			if generation != self._generation:
				return

			if duration <= 0:
				logger.warning(f"{self.name}: non-positive step duration {duration!r}, skipping to next poll")
				break

			self.next_event_time += duration

		self._poll_handle = self.clock.call_later(self.poll_interval, lambda: self._tick(generation))
