"""
arpline - Transposable Bassline

A 16-step bassline in relative pitch mode, rendered offline to a MIDI file.
The grid holds intervals, so the same pattern is transposed by changing the
root note every time the pattern completes.

  Pass │ Root
  ─────┼──────────
  1    │ A1 (33)
  2    │ F1 (29)
  3    │ C2 (36)
  4    │ G1 (31)

How to run
──────────
  python examples/step_sequencer.py bassline.mid

Open the file in any DAW or MIDI player.
"""

import logging
import sys

import arpline
import arpline.midi_utils
import arpline.step_sequencer


logging.basicConfig(level=logging.INFO)


ROOTS = [33, 29, 36, 31]
TEMPO = 126


def main (filename: str) -> None:

	clock = arpline.VirtualClock()

	seq = arpline.StepSequencer(
		clock,
		steps = 16,
		tempo = TEMPO,
		swing = 0.3,
		pitch_mode = arpline.step_sequencer.PitchMode.RELATIVE,
		root_note = ROOTS[0],
	)

	seq.fill_bassline()

	# Octave jump on the off-beats, and a ghost note before the turnaround.
	for index in (6, 14):
		seq.set_step(index, pitch=12, velocity=80, length=0.4)
	seq.set_step(15, gate=False)

	passes = {"count": 0}

	def next_root () -> None:
		passes["count"] += 1
		seq.set_root_note(ROOTS[passes["count"] % len(ROOTS)])

	seq.on_pattern_complete(next_root)

	recorder = arpline.midi_utils.MidiRecorder(tempo=TEMPO, start_time=0.0)
	sink = arpline.midi_utils.MidiSink(clock, recorder=recorder)
	sink.attach(seq)

	seconds_per_pass = 16 * (60.0 / TEMPO / 4)

	seq.start()
	clock.advance(seconds_per_pass * len(ROOTS) - 0.001)
	seq.stop()

	recorder.save(filename)


if __name__ == "__main__":

	main(sys.argv[1] if len(sys.argv) > 1 else "bassline.mid")
