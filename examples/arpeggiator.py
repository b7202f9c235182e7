"""
arpline - Progression Arpeggiator

An arpeggiator walking a minor progression over two octaves, with a second
arpeggiator an octave down playing chord strikes through the same progression.

How it works
────────────
Both arpeggiators load the same progression. Each one moves to the next
chord after a fixed number of its own completed cycles. A lead cycle is
longer than a pad strike, so the two parts drift apart harmonically and
meet again whenever the cycle counts line up.

  Part      │ Pattern   │ Division │ Cycle            │ Bars per chord
  ──────────┼───────────┼──────────┼──────────────────┼───────────────
  Lead      │ upDown    │ 1/16     │ 10 sixteenths    │ 2
  Pad       │ chord     │ 1/2      │ one half note    │ 2

How to run
──────────
1. Set MIDI_DEVICE below to your MIDI interface name (or None for the first one found).
2. Adjust the channel numbers to match your routing.
3. Run: python examples/arpeggiator.py
4. Press Ctrl+C to stop.

Tweakable parameters
────────────────────
- PROGRESSION: any name from arpline.chords.DEFAULT_CATALOG.list_progression_names().
- Pattern: try "converge", "pinchedUp" or "random" on the lead.
- Swing and humanize: small amounts (0.1-0.3) loosen the feel.
"""

import asyncio
import logging

import arpline
import arpline.midi_utils


logging.basicConfig(level=logging.INFO)


# ─── MIDI Setup ──────────────────────────────────────────────────────

MIDI_DEVICE = None

MIDI_CHANNEL_LEAD = 0
MIDI_CHANNEL_PAD = 1

PROGRESSION = "minor-i-vi-iii-vii"
ROOT = 57
TEMPO = 112


async def main () -> None:

	clock = arpline.AsyncioClock()
	device_name, midi_out = arpline.midi_utils.select_output_device(MIDI_DEVICE)

	if midi_out is None:
		return

	lead = arpline.Arpeggiator(clock, arpline.ArpeggiatorConfig(
		pattern = "upDown",
		octaves = 2,
		tempo = TEMPO,
		division = "1/16",
		gate_length = 0.6,
		swing = 0.2,
		humanize = 0.25,
	))

	pad = arpline.Arpeggiator(clock, arpline.ArpeggiatorConfig(
		pattern = "chord",
		tempo = TEMPO,
		division = "1/2",
		gate_length = 0.95,
	))

	lead.load_progression(PROGRESSION, root=ROOT + 12, bars_per_chord=2)
	pad.load_progression(PROGRESSION, root=ROOT, bars_per_chord=2)

	lead_sink = arpline.midi_utils.MidiSink(clock, port=midi_out, channel=MIDI_CHANNEL_LEAD)
	pad_sink = arpline.midi_utils.MidiSink(clock, port=midi_out, channel=MIDI_CHANNEL_PAD)
	lead_sink.attach(lead)
	pad_sink.attach(pad)

	lead.start()
	pad.start()

	try:
		await asyncio.Event().wait()

	finally:
		lead.dispose()
		pad.dispose()
		lead_sink.panic()
		pad_sink.panic()
		midi_out.close()


if __name__ == "__main__":

	try:
		asyncio.run(main())
	except KeyboardInterrupt:
		pass
