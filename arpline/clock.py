"""Clock sources for the look-ahead scheduler.

The engines need exactly two things from the host: the current time in
seconds and a way to be called back a short delay in the future. Anything
satisfying :class:`Clock` will do.

- :class:`AsyncioClock` uses the running asyncio event loop (``loop.time()``
  and ``loop.call_later()``). This is the clock for live playback.
- :class:`VirtualClock` only moves when told to. Tests use it to step through
  playback deterministically, and offline rendering uses it to run a
  performance as fast as the CPU allows.
"""

import asyncio
import dataclasses
import heapq
import itertools
import typing


@typing.runtime_checkable
class TimerHandle (typing.Protocol):

	"""
	Protocol for a pending callback that can be cancelled.
	"""

	def cancel (self) -> None:

		"""
		Prevent the callback from running if it has not run yet.
		"""

		...


@typing.runtime_checkable
class Clock (typing.Protocol):

	"""
	Protocol for the host timer used by the engines.
	"""

	def now (self) -> float:

		"""
		Return the current monotonic time in seconds.
		"""

		...


	def call_later (self, delay: float, callback: typing.Callable[[], typing.Any]) -> TimerHandle:

		"""
		Run ``callback`` after ``delay`` seconds.
		"""

		...


class AsyncioClock:

	"""
	Clock backed by an asyncio event loop.

	When no loop is given, the running loop is looked up on first use, so the
	clock may be created before ``asyncio.run()`` starts as long as it is only
	used from inside it.
	"""

	def __init__ (self, loop: typing.Optional[asyncio.AbstractEventLoop] = None) -> None:

		self._loop = loop


	@property
	def loop (self) -> asyncio.AbstractEventLoop:

		"""
		The event loop this clock schedules on.
		"""

		if self._loop is None:
			self._loop = asyncio.get_running_loop()

		return self._loop


	def now (self) -> float:

		return self.loop.time()


	def call_later (self, delay: float, callback: typing.Callable[[], typing.Any]) -> asyncio.TimerHandle:

		return self.loop.call_later(max(0.0, delay), callback)


@dataclasses.dataclass
class VirtualTimer:

	"""
	A callback queued on a :class:`VirtualClock`.
	"""

	due: float
	callback: typing.Callable[[], typing.Any]
	cancelled: bool = False


	def cancel (self) -> None:

		self.cancelled = True


class VirtualClock:

	"""
	A manually advanced clock.

	Time only moves inside :meth:`advance` / :meth:`advance_to`, which run
	every due callback in time order (ties in scheduling order), setting
	``now()`` to each callback's due time before calling it.

	Example:
		```python
		clock = VirtualClock()
		fired = []
		clock.call_later(0.5, lambda: fired.append(clock.now()))
		clock.advance(1.0)
		# fired == [0.5], clock.now() == 1.0
		```
	"""

	def __init__ (self, start: float = 0.0) -> None:

		self._now = start
		self._queue: typing.List[typing.Tuple[float, int, VirtualTimer]] = []
		self._counter = itertools.count()


	def now (self) -> float:

		return self._now


	def call_later (self, delay: float, callback: typing.Callable[[], typing.Any]) -> VirtualTimer:

		timer = VirtualTimer(due=self._now + max(0.0, delay), callback=callback)
		heapq.heappush(self._queue, (timer.due, next(self._counter), timer))

		return timer


	def advance (self, seconds: float) -> None:

		"""
		Move time forward by ``seconds``, firing everything that falls due.
		"""

		if seconds < 0:
			raise ValueError("Cannot advance a clock backwards")

		self.advance_to(self._now + seconds)


	def advance_to (self, target: float) -> None:

		"""
		Move time forward to ``target``, firing everything that falls due.
		"""

		while self._queue and self._queue[0][0] <= target:

			_, _, timer = heapq.heappop(self._queue)

			if timer.cancelled:
				continue

			self._now = max(self._now, timer.due)
			timer.callback()

		self._now = max(self._now, target)


	def pending (self) -> int:

		"""
		Return the number of queued, not-cancelled callbacks.
		"""

		return sum(1 for _, _, timer in self._queue if not timer.cancelled)
