"""Chord and progression catalog.

This module provides the immutable lookup tables the engines draw harmony
from. Nothing here is mutable at runtime: a :class:`ChordCatalog` is built once
(``DEFAULT_CATALOG`` at import time) and handed to each engine by reference, so
several arpeggiators can share one catalog safely.

Module-level constants:
- `CHORD_INTERVALS`: Maps chord names to semitone offsets from the root
- `CHORD_ALIASES`: Alternative spellings that resolve to a catalog chord
- `PROGRESSION_DEFINITIONS`: Maps progression keys to a title and a list of
  ``(chord_name, degree)`` pairs, where ``degree`` is the semitone offset of
  that chord's root from the progression root

Chord names: `"major"`, `"minor"`, `"major7"`, `"minor7"`, `"dom7"`, `"sus2"`,
`"sus4"`, `"dim"`, `"aug"`, `"maj9"`, `"m7b5"`
"""

import dataclasses
import types
import typing


CHORD_INTERVALS: typing.Dict[str, typing.Tuple[int, ...]] = {
	"major": (0, 4, 7),
	"minor": (0, 3, 7),
	"major7": (0, 4, 7, 11),
	"minor7": (0, 3, 7, 10),
	"dom7": (0, 4, 7, 10),
	"sus2": (0, 2, 7),
	"sus4": (0, 5, 7),
	"dim": (0, 3, 6),
	"aug": (0, 4, 8),
	"maj9": (0, 4, 7, 11, 14),
	"m7b5": (0, 3, 6, 10),
}

CHORD_ALIASES: typing.Dict[str, str] = {
	"dominant_7th": "dom7",
	"major_7th": "major7",
	"minor_7th": "minor7",
	"diminished": "dim",
	"augmented": "aug",
	"half_diminished_7th": "m7b5",
	"major_9th": "maj9",
}

PROGRESSION_DEFINITIONS: typing.Dict[str, typing.Tuple[str, typing.List[typing.Tuple[str, int]]]] = {
	"major-i-iv-v": ("I-IV-V (Major)", [
		("major", 0),
		("major", 5),
		("major", 7),
	]),
	"major-i-v-vi-iv": ("I-V-vi-IV (Pop)", [
		("major", 0),
		("major", 7),
		("minor", 9),
		("major", 5),
	]),
	"minor-i-iv-v": ("i-iv-V (Minor)", [
		("minor", 0),
		("minor", 5),
		("major", 7),
	]),
	"minor-i-vi-iii-vii": ("i-VI-III-VII (Andalusian)", [
		("minor", 0),
		("major", 8),
		("major", 3),
		("major", 10),
	]),
	"jazz-ii-v-i": ("ii-V-I (Jazz)", [
		("minor7", 2),
		("dom7", 7),
		("major7", 0),
	]),
	"ambient-sus": ("Suspended Ambient", [
		("sus4", 0),
		("sus4", 2),
		("sus4", -2),
	]),
	"extended-maj": ("Extended Major", [
		("maj9", 0),
		("maj9", 5),
		("maj9", 7),
	]),
}


@dataclasses.dataclass(frozen=True)
class Chord:

	"""
	A named set of semitone offsets from a root.
	"""

	name: str
	intervals: typing.Tuple[int, ...]


	def tones (self, root: int) -> typing.List[int]:

		"""Return note numbers for this chord built on ``root``.

		Example:
			```python
			Chord("major", (0, 4, 7)).tones(60)  # → [60, 64, 67]
			```
		"""

		return [root + interval for interval in self.intervals]


@dataclasses.dataclass(frozen=True)
class ProgressionStep:

	"""
	One chord of a progression, rooted ``degree`` semitones from the progression root.
	"""

	chord: Chord
	degree: int


	def tones (self, root: int) -> typing.List[int]:

		return self.chord.tones(root + self.degree)


@dataclasses.dataclass(frozen=True)
class Progression:

	"""
	A named, ordered sequence of chords.
	"""

	key: str
	title: str
	steps: typing.Tuple[ProgressionStep, ...]


	def __len__ (self) -> int:

		return len(self.steps)


	def chord_tones (self, root: int, index: int) -> typing.List[int]:

		"""
		Return the notes of chord ``index`` (wrapping) relative to ``root``.
		"""

		return self.steps[index % len(self.steps)].tones(root)


class ChordCatalog:

	"""
	Read-only lookup of chords and progressions.

	The tables are copied into read-only mappings at construction, so a
	catalog can be shared freely between engines.
	"""

	def __init__ (
		self,
		chords: typing.Optional[typing.Mapping[str, typing.Sequence[int]]] = None,
		progressions: typing.Optional[typing.Mapping[str, typing.Tuple[str, typing.Sequence[typing.Tuple[str, int]]]]] = None,
		aliases: typing.Optional[typing.Mapping[str, str]] = None
	) -> None:

		"""Build a catalog, defaulting to the built-in tables.

		Raises ``ValueError`` if a progression or alias names a chord that is
		not in ``chords``.
		"""

		chords = CHORD_INTERVALS if chords is None else chords
		progressions = PROGRESSION_DEFINITIONS if progressions is None else progressions
		aliases = CHORD_ALIASES if aliases is None else aliases

		chord_table = {name: Chord(name=name, intervals=tuple(intervals)) for name, intervals in chords.items()}

		for alias, target in aliases.items():
			if target not in chord_table:
				raise ValueError(f"Alias {alias!r} refers to unknown chord {target!r}")

		progression_table: typing.Dict[str, Progression] = {}

		for key, (title, entries) in progressions.items():

			steps: typing.List[ProgressionStep] = []

			for chord_name, degree in entries:
				if chord_name not in chord_table:
					raise ValueError(f"Progression {key!r} uses unknown chord {chord_name!r}")
				steps.append(ProgressionStep(chord=chord_table[chord_name], degree=degree))

			if not steps:
				raise ValueError(f"Progression {key!r} has no chords")

			progression_table[key] = Progression(key=key, title=title, steps=tuple(steps))

		self._chords = types.MappingProxyType(chord_table)
		self._aliases = types.MappingProxyType(dict(aliases))
		self._progressions = types.MappingProxyType(progression_table)


	def list_chord_names (self) -> typing.List[str]:

		return list(self._chords.keys())


	def get_chord (self, name: str) -> typing.Optional[Chord]:

		"""
		Return a chord by name or alias, or ``None`` if unknown.
		"""

		return self._chords.get(self._aliases.get(name, name))


	def list_progression_names (self) -> typing.List[str]:

		return list(self._progressions.keys())


	def get_progression (self, name: str) -> typing.Optional[Progression]:

		return self._progressions.get(name)


	def chord_notes (self, name: str, root: int) -> typing.Optional[typing.List[int]]:

		"""
		Return the notes of chord ``name`` built on ``root``, or ``None`` if unknown.
		"""

		chord = self.get_chord(name)

		if chord is None:
			return None

		return chord.tones(root)


	def progression_chord_notes (self, name: str, root: int, index: int = 0) -> typing.Optional[typing.List[int]]:

		"""Return the notes of one chord of a progression, or ``None`` if unknown.

		Example:
			```python
			DEFAULT_CATALOG.progression_chord_notes("major-i-iv-v", 60)     # → [60, 64, 67]
			DEFAULT_CATALOG.progression_chord_notes("major-i-iv-v", 60, 1)  # → [65, 69, 72]
			```
		"""

		progression = self.get_progression(name)

		if progression is None:
			return None

		return progression.chord_tones(root, index)


DEFAULT_CATALOG = ChordCatalog()
