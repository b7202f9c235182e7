import logging
import random
import typing

import pytest

import arpline.clock
import arpline.step_sequencer


StepSequencer = arpline.step_sequencer.StepSequencer
SequencerStep = arpline.step_sequencer.SequencerStep


def make_seq (clock: arpline.clock.VirtualClock, **kwargs: typing.Any) -> arpline.step_sequencer.StepSequencer:

	return StepSequencer(clock, rng=random.Random(0), **kwargs)


class StepLog:

	"""Records (index, time) for every step played."""

	def __init__ (self, seq: arpline.step_sequencer.StepSequencer) -> None:

		self.steps: list[tuple[int, float]] = []
		seq.on_step(lambda index, step, time: self.steps.append((index, time)))

	@property
	def indices (self) -> list[int]:

		return [index for index, _ in self.steps]


# ---------------------------------------------------------------------------
# Grid editing
# ---------------------------------------------------------------------------

def test_default_grid (clock) -> None:

	seq = make_seq(clock)

	assert seq.get_step_count() == 16
	assert all(step == SequencerStep(gate=False, pitch=60, velocity=100, length=0.8) for step in seq.get_steps())


def test_invalid_step_count_falls_back (clock, caplog) -> None:

	with caplog.at_level(logging.WARNING):
		seq = make_seq(clock, steps=12)

	assert seq.get_step_count() == 16
	assert "Invalid step count" in caplog.text

	seq.set_steps(64)
	assert seq.get_step_count() == 64

	seq.set_steps(3)
	assert seq.get_step_count() == 16


def test_set_steps_preserves_overlap (clock) -> None:

	"""Shrinking keeps the first steps; growing adds silent steps."""

	seq = make_seq(clock, steps=16)
	seq.set_step(2, gate=True, pitch=67)
	seq.set_step(12, gate=True, pitch=72)
	seq.set_steps(8)

	assert seq.get_step_count() == 8
	assert seq.get_step(2) == SequencerStep(gate=True, pitch=67)

	seq.set_steps(16)

	assert seq.get_step(2).gate
	assert not seq.get_step(12).gate
	assert all(not step.gate for step in seq.get_steps()[8:])


def test_set_step_clamps_and_validates (clock) -> None:

	seq = make_seq(clock, steps=8)

	assert seq.set_step(3, gate=True, velocity=300, length=0.0)

	step = seq.get_step(3)

	assert step.velocity == 127
	assert step.length == 0.01
	assert not seq.set_step(8, gate=True)
	assert not seq.set_step(-1, gate=True)
	assert seq.get_step(8) is None


def test_set_step_rejects_bad_fields (clock, caplog) -> None:

	"""Unknown fields and non-numeric values leave the step untouched."""

	seq = make_seq(clock, steps=8)
	seq.set_step(0, gate=True, pitch=64)

	with caplog.at_level(logging.WARNING):
		assert not seq.set_step(0, gate=False, volume=3)
		assert not seq.set_step(0, velocity=None)
		assert not seq.set_step(0, pitch="high")

	assert seq.get_step(0) == SequencerStep(gate=True, pitch=64)
	assert "unknown field" in caplog.text


def test_get_step_returns_copy (clock) -> None:

	seq = make_seq(clock, steps=4)
	step = seq.get_step(0)
	step.gate = True

	assert not seq.get_step(0).gate


def test_set_pattern_requires_matching_length (clock, caplog) -> None:

	seq = make_seq(clock, steps=4)

	with caplog.at_level(logging.WARNING):
		assert not seq.set_pattern([SequencerStep(gate=True)] * 8)

	assert not any(step.gate for step in seq.get_steps())
	assert seq.set_pattern([SequencerStep(gate=True, pitch=p) for p in (60, 62, 64, 65)])
	assert [step.pitch for step in seq.get_steps()] == [60, 62, 64, 65]


def test_clear_turns_gates_off (clock) -> None:

	seq = make_seq(clock, steps=4)
	seq.fill_melodic()
	seq.clear()

	assert not any(step.gate for step in seq.get_steps())
	assert [step.pitch for step in seq.get_steps()] == [60, 62, 64, 65]


def test_randomize_ranges (clock) -> None:

	seq = make_seq(clock, steps=64)
	seq.randomize(1.0)

	assert all(step.gate for step in seq.get_steps())
	assert all(48 <= step.pitch <= 71 for step in seq.get_steps())
	assert all(64 <= step.velocity <= 127 for step in seq.get_steps())

	seq.randomize(0.0)

	assert not any(step.gate for step in seq.get_steps())


def test_randomize_relative_uses_intervals (clock) -> None:

	seq = make_seq(clock, steps=64, pitch_mode="relative")
	seq.randomize(0.5)

	assert all(-12 <= step.pitch <= 12 for step in seq.get_steps())


def test_fill_bassline_and_melodic (clock) -> None:

	seq = make_seq(clock, steps=8, pitch_mode="relative")
	seq.fill_bassline()

	assert [step.pitch for step in seq.get_steps()] == [0, 7, 12, 7] * 2
	assert all(step.gate and step.velocity == 110 for step in seq.get_steps())

	seq.fill_melodic([0, 3, 7])

	assert [step.pitch for step in seq.get_steps()] == [0, 3, 7, 0, 3, 7, 0, 3]
	assert [step.velocity for step in seq.get_steps()][:4] == [100, 110, 100, 110]


def test_fill_bassline_absolute_uses_root (clock) -> None:

	seq = make_seq(clock, steps=4, root_note=36)
	seq.fill_bassline()

	assert [step.pitch for step in seq.get_steps()] == [36, 43, 48, 43]


def test_fill_generative_moves_stepwise (clock) -> None:

	scale = [0, 2, 4, 5, 7, 9, 11]
	seq = make_seq(clock, steps=32, pitch_mode="relative")
	seq.fill_generative(scale)

	degrees = [scale.index(step.pitch) for step in seq.get_steps()]

	assert degrees[0] == 0
	assert all(abs(a - b) <= 2 for a, b in zip(degrees, degrees[1:]))
	assert all(90 <= step.velocity <= 119 for step in seq.get_steps())


# ---------------------------------------------------------------------------
# Playback modes
# ---------------------------------------------------------------------------

def test_forward_plays_and_completes (clock, event_log) -> None:

	seq = make_seq(clock, steps=8)
	steps = StepLog(seq)
	log = event_log(seq)
	seq.set_step(0, gate=True, pitch=60)
	seq.set_step(2, gate=True, pitch=64)
	seq.start()

	assert steps.steps == [(0, 0.0)]
	assert log.pitches == [60]

	clock.advance(1.0)

	assert steps.indices == [0, 1, 2, 3, 4, 5, 6, 7, 0]
	assert log.pitches == [60, 64, 60]
	assert log.completions == 1


def test_reverse_completes_on_last_step (clock, event_log) -> None:

	seq = make_seq(clock, steps=4, mode="reverse")
	steps = StepLog(seq)
	log = event_log(seq)
	seq.start()
	clock.advance(1.0)

	assert steps.indices == [0, 3, 2, 1, 0, 3, 2, 1, 0]
	assert log.completions == 2


def test_pingpong_bounces (clock, event_log) -> None:

	"""Ping-pong turns at both ends and completes when it returns to step 0."""

	seq = make_seq(clock, steps=4, mode="pingpong")
	steps = StepLog(seq)
	log = event_log(seq)
	seq.start()
	clock.advance(1.0)

	assert steps.indices == [0, 1, 2, 3, 2, 1, 0, 1, 2]
	assert log.completions == 1


def test_random_mode_stays_in_range (clock, event_log) -> None:

	seq = make_seq(clock, steps=8, mode="random")
	steps = StepLog(seq)
	log = event_log(seq)
	seq.start()
	clock.advance(5.0)

	assert all(0 <= index < 8 for index in steps.indices)
	assert len(set(steps.indices)) > 1
	assert log.completions == 0


def test_step_length_and_release (clock, event_log) -> None:

	seq = make_seq(clock, steps=4)
	log = event_log(seq)
	seq.set_step(0, gate=True, pitch=62, velocity=90, length=0.5)
	seq.start()

	event = log.notes[0]

	assert (event.pitch, event.velocity, event.gate) == (62, 90, 0.5)
	assert event.duration == pytest.approx(0.0625)

	clock.advance(0.1)

	assert [(off.pitch, off.time) for off in log.offs] == [(62, pytest.approx(0.0625))]


def test_swing_lengthens_odd_steps (clock) -> None:

	seq = make_seq(clock, steps=4, swing=1.0)
	steps = StepLog(seq)
	seq.start()
	clock.advance(1.0)

	times = [time for _, time in steps.steps]

	assert times[:5] == pytest.approx([0.0, 0.125, 0.3125, 0.4375, 0.625])


def test_note_off_never_before_note_on (clock, event_log) -> None:

	seq = make_seq(clock, steps=8)
	seq.set_pattern([SequencerStep(gate=True, pitch=60 + (i % 2), length=1.0) for i in range(8)])
	log = event_log(seq)
	seq.start()
	clock.advance(3.0)
	seq.stop()

	balance: dict[int, int] = {}

	for kind, pitch in log.order:
		balance[pitch] = balance.get(pitch, 0) + (1 if kind == "on" else -1)
		assert balance[pitch] >= 0

	assert all(count == 0 for count in balance.values())


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

def test_pause_resume_continues_after_last_step (clock) -> None:

	seq = make_seq(clock, steps=8)
	steps = StepLog(seq)
	seq.start()
	clock.advance(0.3)
	seq.pause()

	assert seq.position == 3
	assert seq.is_paused

	clock.advance(1.0)
	seq.resume()

	assert steps.steps[-1] == (4, pytest.approx(1.3))


def test_stop_resets_position (clock, event_log) -> None:

	seq = make_seq(clock, steps=8)
	seq.fill_melodic()
	log = event_log(seq)
	seq.start()
	clock.advance(0.3)
	seq.stop()

	assert seq.position == 0
	assert not seq.is_running
	assert seq.active_notes() == []

	count = len(log.order)
	seq.stop()
	clock.advance(1.0)

	assert len(log.order) == count


def test_reset_while_running_plays_step_zero_next (clock) -> None:

	seq = make_seq(clock, steps=8)
	steps = StepLog(seq)
	seq.start()
	clock.advance(0.3)
	seq.reset()
	count = len(steps.steps)
	clock.advance(0.3)

	assert steps.indices[count:count + 2] == [0, 1]


def test_set_mode_while_running_restarts (clock) -> None:

	seq = make_seq(clock, steps=8)
	steps = StepLog(seq)
	seq.start()
	clock.advance(0.3)

	assert seq.set_mode("reverse")

	count = len(steps.steps)
	clock.advance(0.3)

	assert steps.indices[count:count + 2] == [0, 7]


def test_unknown_mode_rejected (clock) -> None:

	seq = make_seq(clock)

	assert not seq.set_mode("sideways")
	assert seq.get_mode() is arpline.step_sequencer.PlaybackMode.FORWARD


def test_dispose_keeps_bank (clock) -> None:

	bank = arpline.step_sequencer.PatternBank()
	seq = make_seq(clock, bank=bank)
	seq.fill_melodic()
	seq.save_pattern("scale")
	seq.start()
	clock.advance(0.3)
	seq.dispose()

	assert clock.pending() == 0
	assert "scale" in bank
	assert seq.events.listener_count("step") == 0


# ---------------------------------------------------------------------------
# Pitch modes and live input
# ---------------------------------------------------------------------------

def test_relative_mode_follows_root (clock, event_log) -> None:

	seq = make_seq(clock, steps=4, pitch_mode="relative")
	seq.fill_bassline()
	log = event_log(seq)
	seq.note_on(48)
	seq.start()
	clock.advance(0.4)

	assert log.pitches[:4] == [48, 55, 60, 55]


def test_relative_mode_silent_without_root (clock, event_log) -> None:

	seq = make_seq(clock, steps=4, pitch_mode="relative")
	seq.fill_bassline()
	steps = StepLog(seq)
	log = event_log(seq)
	seq.start()
	clock.advance(0.5)

	assert len(steps.steps) >= 4
	assert log.notes == []


def test_releasing_root_silences_unless_held (clock, event_log) -> None:

	seq = make_seq(clock, steps=4, pitch_mode="relative")
	seq.fill_bassline()
	log = event_log(seq)
	seq.note_on(48)
	seq.note_off(48)

	assert seq.get_root_note() is None

	seq.set_note_hold(True)
	seq.note_on(50)
	seq.note_off(50)

	assert seq.get_root_note() == 50


def test_auto_start_follows_keys (clock) -> None:

	seq = make_seq(clock, steps=4, pitch_mode="relative", auto_start=True)
	seq.note_on(48)

	assert seq.is_running

	seq.note_off(48)

	assert not seq.is_running


# ---------------------------------------------------------------------------
# Recording
# ---------------------------------------------------------------------------

def test_recording_relative (clock) -> None:

	"""The first recorded note sets the root and later notes are stored as intervals."""

	seq = make_seq(clock, steps=4, pitch_mode="relative")
	seq.fill_bassline()
	seq.start()
	seq.start_recording()

	assert not seq.is_running
	assert seq.is_recording
	assert not any(step.gate for step in seq.get_steps())

	seq.record_note(60)
	seq.note_on(64, 90)
	seq.record_rest()

	assert seq.record_cursor == 3

	seq.record_note(67)

	steps = seq.get_steps()

	assert [(step.gate, step.pitch) for step in steps] == [(True, 0), (True, 4), (False, 12), (True, 7)]
	assert steps[1].velocity == 90
	assert not seq.is_recording
	assert not seq.record_note(70)


def test_recording_absolute_with_given_root (clock) -> None:

	seq = make_seq(clock, steps=4)
	seq.start_recording()
	seq.record_note(62)
	seq.record_note(65)
	seq.stop_recording()

	assert [step.pitch for step in seq.get_steps()[:2]] == [62, 65]
	assert not seq.is_recording


def test_recording_relative_with_explicit_root (clock) -> None:

	seq = make_seq(clock, steps=4, pitch_mode="relative")
	seq.start_recording(root=57)
	seq.record_note(60)

	assert seq.get_step(0).pitch == 3


def test_record_step_events (clock) -> None:

	seq = make_seq(clock, steps=4)
	cursors: list[int] = []
	seq.events.on("record_step", cursors.append)
	seq.start_recording()
	seq.record_note(60)
	seq.record_rest()

	assert cursors == [0, 1]


# ---------------------------------------------------------------------------
# Pattern bank
# ---------------------------------------------------------------------------

def test_save_clear_load_round_trip (clock) -> None:

	seq = make_seq(clock, steps=8)
	seq.fill_melodic()
	original = seq.get_steps()
	seq.save_pattern("verse")
	seq.clear()

	assert seq.load_pattern("verse")
	assert seq.get_steps() == original
	assert seq.list_patterns() == ["verse"]


def test_load_resizes_grid (clock) -> None:

	seq = make_seq(clock, steps=4)
	seq.fill_bassline()
	seq.save_pattern("short")
	seq.set_steps(32)

	assert seq.load_pattern("short")
	assert seq.get_step_count() == 4


def test_load_unknown_pattern (clock) -> None:

	seq = make_seq(clock)

	assert not seq.load_pattern("missing")
	assert not seq.delete_pattern("missing")


def test_shared_bank_between_sequencers (clock) -> None:

	"""Two sequencers sharing a bank see each other's saves, without aliasing steps."""

	bank = arpline.step_sequencer.PatternBank()
	first = make_seq(clock, steps=8, bank=bank)
	second = make_seq(clock, steps=16, bank=bank)

	first.fill_bassline()
	first.save_pattern("bass")

	assert second.load_pattern("bass")
	assert second.get_step_count() == 8

	second.set_step(0, pitch=30)

	assert first.get_step(0).pitch != 30
	assert bank.load("bass")[0].pitch != 30
	assert first.delete_pattern("bass")
	assert second.list_patterns() == []


def test_set_parameter (clock) -> None:

	seq = make_seq(clock)

	assert seq.set_parameter(arpline.step_sequencer.SeqParameter.TEMPO, 999)
	assert seq.get_tempo() == 300

	assert seq.set_parameter("steps", 8)
	assert seq.get_step_count() == 8

	assert seq.set_parameter("pitch_mode", "relative")
	assert seq.get_pitch_mode() is arpline.step_sequencer.PitchMode.RELATIVE

	assert not seq.set_parameter("mode", "sideways")
	assert not seq.set_parameter("volume", 1)
