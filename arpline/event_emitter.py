import inspect
import logging
import typing


logger = logging.getLogger(__name__)


CallbackType = typing.Callable[..., typing.Any]


class EventEmitter:

	"""
	A listener registry keyed by event name.

	Emitting an event with no registered listeners is a no-op. A listener that
	raises is logged and skipped so the remaining listeners (and playback)
	carry on.
	"""

	def __init__ (self) -> None:

		self._listeners: typing.Dict[str, typing.List[CallbackType]] = {}


	def on (self, event_name: str, callback: CallbackType) -> None:

		"""
		Register a callback for an event name.

		Raises ``ValueError`` for coroutine functions - engine events are
		delivered synchronously from the scheduler.
		"""

		if inspect.iscoroutinefunction(callback):
			raise ValueError(f"Async callbacks are not supported for event {event_name!r}")

		self._listeners.setdefault(event_name, []).append(callback)


	def off (self, event_name: str, callback: CallbackType) -> None:

		"""
		Remove a callback added with :meth:`on`.

		Raises ``ValueError`` when the callback was never registered for this event.
		"""

		listeners = self._listeners.get(event_name, [])

		if callback not in listeners:
			raise ValueError(f"No such listener for event {event_name!r}")

		listeners.remove(callback)


	def clear (self) -> None:

		"""
		Remove every listener for every event.
		"""

		self._listeners = {}


	def listener_count (self, event_name: str) -> int:

		"""
		Return how many callbacks are registered for an event.
		"""

		return len(self._listeners.get(event_name, []))


	def emit (self, event_name: str, *args: typing.Any, **kwargs: typing.Any) -> None:

		"""
		Call every listener registered for an event, in registration order.
		"""

		# Copy so a listener may unsubscribe itself mid-emit.
		for callback in list(self._listeners.get(event_name, ())):

			try:
				callback(*args, **kwargs)

			except Exception:
				logger.exception(f"Listener for {event_name!r} failed")
