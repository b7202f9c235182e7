"""Arpeggio pattern generation.

:func:`generate_sequence` turns a set of held notes into the ordered,
repeating sequence an arpeggiator steps through. It is pure: no timing, no
engine state. The notes are sorted and de-duplicated first, then stacked
across the requested number of octaves (+12 semitones per octave) to form the
*pool*, and the pattern decides the order the pool is visited in.

With ``[60, 64, 67]`` over one octave:

  Pattern       │ Sequence
  ──────────────┼─────────────────────
  up            │ 60 64 67
  down          │ 67 64 60
  upDown        │ 60 64 67 64
  downUp        │ 67 64 60 64
  upDown2       │ 60 64 67 67 64 60
  downUp2       │ 67 64 60 60 64 67
  converge      │ 60 67 64
  diverge       │ 64 67 60
  pinchedUp     │ 60 67 64
  pinchedDown   │ 67 60 64
  chord         │ 60 64 67 (struck together)

``random`` draws each entry independently from the pool and ``shuffle`` visits
every pool note once in random order. Both draw when the sequence is generated,
not per step.
"""

import enum
import random
import typing


class PatternKind (enum.Enum):

	"""
	How a held-note pool is ordered into a sequence.

	Lookup by value is forgiving about case, underscores and hyphens, so
	``PatternKind("updown")`` and ``PatternKind("pinched_up")`` both work.
	"""

	UP = "up"
	DOWN = "down"
	UP_DOWN = "upDown"
	DOWN_UP = "downUp"
	UP_DOWN_2 = "upDown2"
	DOWN_UP_2 = "downUp2"
	CONVERGE = "converge"
	DIVERGE = "diverge"
	RANDOM = "random"
	SHUFFLE = "shuffle"
	PINCHED_UP = "pinchedUp"
	PINCHED_DOWN = "pinchedDown"
	CHORD = "chord"


	@classmethod
	def _missing_ (cls, value: object) -> typing.Optional["PatternKind"]:

		if not isinstance(value, str):
			return None

		wanted = value.replace("_", "").replace("-", "").lower()

		for member in cls:
			if member.value.lower() == wanted:
				return member

		return None


_default_rng = random.Random()


def expand_octaves (notes: typing.Sequence[int], octaves: int) -> typing.List[int]:

	"""
	Stack ``notes`` across ``octaves`` octaves, lowest octave first.
	"""

	return [note + 12 * octave for octave in range(octaves) for note in notes]


def is_strike (pattern: typing.Union[PatternKind, str]) -> bool:

	"""
	Return True when a pattern sounds its whole sequence at once on every step.
	"""

	return PatternKind(pattern) is PatternKind.CHORD


def _converge (pool: typing.List[int]) -> typing.List[int]:

	result: typing.List[int] = []
	left, right = 0, len(pool) - 1

	while left <= right:
		result.append(pool[left])
		left += 1
		if left <= right:
			result.append(pool[right])
			right -= 1

	return result


def _diverge (pool: typing.List[int]) -> typing.List[int]:

	result: typing.List[int] = []
	mid = len(pool) // 2
	offset = 0

	while mid - offset >= 0 or mid + offset < len(pool):
		if mid + offset < len(pool):
			result.append(pool[mid + offset])
		if offset > 0 and mid - offset >= 0:
			result.append(pool[mid - offset])
		offset += 1

	return result


def _shuffle (pool: typing.List[int], rng: random.Random) -> typing.List[int]:

	result = list(pool)
	rng.shuffle(result)

	return result


_BUILDERS: typing.Dict[PatternKind, typing.Callable[[typing.List[int], random.Random], typing.List[int]]] = {
	PatternKind.UP: lambda pool, rng: list(pool),
	PatternKind.DOWN: lambda pool, rng: pool[::-1],
	PatternKind.UP_DOWN: lambda pool, rng: pool + pool[1:-1][::-1],
	PatternKind.DOWN_UP: lambda pool, rng: pool[::-1] + pool[1:-1],
	PatternKind.UP_DOWN_2: lambda pool, rng: pool + pool[::-1],
	PatternKind.DOWN_UP_2: lambda pool, rng: pool[::-1] + pool,
	PatternKind.CONVERGE: lambda pool, rng: _converge(pool),
	PatternKind.DIVERGE: lambda pool, rng: _diverge(pool),
	PatternKind.RANDOM: lambda pool, rng: [rng.choice(pool) for _ in pool],
	PatternKind.SHUFFLE: _shuffle,
	PatternKind.PINCHED_UP: lambda pool, rng: [pool[0], pool[-1]] + pool[1:-1],
	PatternKind.PINCHED_DOWN: lambda pool, rng: [pool[-1], pool[0]] + pool[1:-1][::-1],
	PatternKind.CHORD: lambda pool, rng: list(pool),
}


def generate_sequence (
	notes: typing.Iterable[int],
	octaves: int = 1,
	pattern: typing.Union[PatternKind, str] = PatternKind.UP,
	rng: typing.Optional[random.Random] = None
) -> typing.List[int]:

	"""Expand held notes into an arpeggio sequence.

	Parameters:
		notes: Held note numbers in any order; duplicates are ignored.
		octaves: How many octaves to span (values below 1 count as 1).
		pattern: A :class:`PatternKind` or its string value.
		rng: Random generator for ``random`` and ``shuffle``. Pass a seeded
			``random.Random`` for repeatable output.

	Returns:
		The sequence of note numbers. Empty input gives an empty sequence.
		A single held note gives that note once per octave, whatever the
		pattern.

	Raises:
		ValueError: If ``pattern`` is not a known pattern name.

	Example:
		```python
		generate_sequence([67, 60, 64], octaves=2, pattern="up")
		# → [60, 64, 67, 72, 76, 79]
		```
	"""

	kind = PatternKind(pattern)
	held = sorted(set(notes))

	if not held:
		return []

	pool = expand_octaves(held, max(1, int(octaves)))

	if len(held) == 1:
		return pool

	return _BUILDERS[kind](pool, rng if rng is not None else _default_rng)
