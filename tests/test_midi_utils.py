import asyncio

import mido
import pytest

import arpline.arpeggiator
import arpline.clock
import arpline.events
import arpline.midi_utils

import conftest


# ---------------------------------------------------------------------------
# Device selection
# ---------------------------------------------------------------------------

def test_select_output_first_device (patch_midi) -> None:

	"""Without a name the first available output is opened."""

	name, midi_out = arpline.midi_utils.select_output_device()

	assert name == "Dummy MIDI"
	assert isinstance(midi_out, conftest.FakeMidiOut)


def test_select_output_partial_name (patch_midi) -> None:

	name, midi_out = arpline.midi_utils.select_output_device("dummy")

	assert name == "Dummy MIDI"
	assert midi_out is conftest._current_fake_output


def test_select_output_missing_device (patch_midi) -> None:

	assert arpline.midi_utils.select_output_device("Nope") == (None, None)


def test_match_port_name () -> None:

	ports = ["Scarlett 2i4 USB MIDI 1", "Midi Through Port-0", "Scarlett 2i4 USB MIDI 2"]

	assert arpline.midi_utils.match_port_name(ports, "Midi Through Port-0") == "Midi Through Port-0"
	assert arpline.midi_utils.match_port_name(ports, "through") == "Midi Through Port-0"
	assert arpline.midi_utils.match_port_name(ports, "scarlett") is None
	assert arpline.midi_utils.match_port_name(ports, "MIDI 2") == "Scarlett 2i4 USB MIDI 2"
	assert arpline.midi_utils.match_port_name(ports, "Keystep") is None


def test_select_input_not_requested (patch_midi) -> None:

	assert arpline.midi_utils.select_input_device(None) == (None, None)


def test_select_input_attaches_callback (patch_midi) -> None:

	"""The matched input delivers messages to the callback."""

	received: list = []
	name, midi_in = arpline.midi_utils.select_input_device("keys", received.append)

	assert name == "Dummy Keys"

	midi_in.inject(mido.Message('note_on', note=60, velocity=100))

	assert received[0].note == 60


def test_select_input_missing_device (patch_midi) -> None:

	assert arpline.midi_utils.select_input_device("Missing Keys") == (None, None)


# ---------------------------------------------------------------------------
# MidiSink
# ---------------------------------------------------------------------------

def test_sink_holds_note_on_until_start_time (clock) -> None:

	"""Notes emitted ahead of time are sent when the clock reaches them."""

	port = conftest.FakeMidiOut()
	sink = arpline.midi_utils.MidiSink(clock, port=port, channel=2)

	sink.handle_note(arpline.events.NoteEvent(pitch=60, velocity=90, gate=0.8, time=0.05, duration=0.1))

	assert port.sent == []

	clock.advance(0.05)

	assert port.sent == [mido.Message('note_on', channel=2, note=60, velocity=90)]
	assert sink.sounding() == [60]

	sink.handle_note_off(arpline.events.NoteOff(pitch=60, time=0.15))

	assert port.sent[-1] == mido.Message('note_off', channel=2, note=60, velocity=0)
	assert sink.sounding() == []


def test_sink_rejects_bad_channel (clock) -> None:

	with pytest.raises(ValueError):
		arpline.midi_utils.MidiSink(clock, channel=16)


def test_panic_releases_everything (clock) -> None:

	port = conftest.FakeMidiOut()
	sink = arpline.midi_utils.MidiSink(clock, port=port)

	sink.handle_note(arpline.events.NoteEvent(pitch=60, velocity=100, gate=1.0))
	sink.handle_note(arpline.events.NoteEvent(pitch=64, velocity=100, gate=1.0))
	clock.advance(0.0)
	sink.panic()

	offs = [message.note for message in port.sent if message.type == 'note_off']

	assert offs == [60, 64]
	assert port.sent[-1] == mido.Message('control_change', channel=0, control=123, value=0)
	assert sink.sounding() == []


def test_stopping_engine_leaves_nothing_sounding (clock) -> None:

	"""Stopping an arpeggiator cancels note-ons still waiting in the sink."""

	port = conftest.FakeMidiOut()
	sink = arpline.midi_utils.MidiSink(clock, port=port)
	arp = arpline.arpeggiator.Arpeggiator(clock)
	sink.attach(arp)

	arp.set_notes([60, 64, 67])
	arp.start()
	clock.advance(0.45)
	arp.stop()
	clock.advance(1.0)

	assert sink.sounding() == []

	ons = [message for message in port.sent if message.type == 'note_on']

	# Notes due at 0, 0.125, 0.25 and 0.375; the one queued for 0.5 was cancelled.
	assert len(ons) == 4


def test_early_note_off_sends_pending_note_on_first (clock) -> None:

	"""A release arriving before its note-on has fired still goes out after it."""

	port = conftest.FakeMidiOut()
	sink = arpline.midi_utils.MidiSink(clock, port=port)

	sink.handle_note(arpline.events.NoteEvent(pitch=60, velocity=100, gate=0.0, time=0.0))
	sink.handle_note_off(arpline.events.NoteOff(pitch=60, time=0.0))
	clock.advance(0.1)

	assert [(message.type, message.note) for message in port.sent] == [('note_on', 60), ('note_off', 60)]
	assert sink.sounding() == []


def test_note_off_for_future_note_drops_both (clock) -> None:

	port = conftest.FakeMidiOut()
	sink = arpline.midi_utils.MidiSink(clock, port=port)

	sink.handle_note(arpline.events.NoteEvent(pitch=60, velocity=100, gate=0.8, time=0.05))
	sink.handle_note_off(arpline.events.NoteOff(pitch=60, time=0.0))
	clock.advance(0.1)

	assert port.sent == []


def test_note_off_releases_sounding_note_before_repeat (clock) -> None:

	"""With the same pitch sounding, a release belongs to it and not to a queued repeat."""

	port = conftest.FakeMidiOut()
	sink = arpline.midi_utils.MidiSink(clock, port=port)

	sink.handle_note(arpline.events.NoteEvent(pitch=60, velocity=100, gate=1.0, time=0.0))
	clock.advance(0.0)
	sink.handle_note(arpline.events.NoteEvent(pitch=60, velocity=100, gate=1.0, time=0.125))
	sink.handle_note_off(arpline.events.NoteOff(pitch=60, time=0.125))
	clock.advance(0.125)

	assert [message.type for message in port.sent] == ['note_on', 'note_off', 'note_on']
	assert sink.sounding() == [60]


@pytest.mark.asyncio
async def test_zero_gate_notes_never_hang () -> None:

	"""On the asyncio clock, zero-length notes keep note-on before note-off and never stick."""

	clock = arpline.clock.AsyncioClock()
	port = conftest.FakeMidiOut()
	sink = arpline.midi_utils.MidiSink(clock, port=port)

	arp = arpline.arpeggiator.Arpeggiator(clock, arpline.arpeggiator.ArpeggiatorConfig(
		tempo = 300,
		division = "1/32",
		gate_length = 0.0,
	))
	sink.attach(arp)
	arp.set_notes([60, 64, 67])
	arp.start()

	await asyncio.sleep(0.5)

	arp.stop()

	await asyncio.sleep(0.05)

	balance: dict[int, int] = {}

	for message in port.sent:
		balance[message.note] = balance.get(message.note, 0) + (1 if message.type == 'note_on' else -1)
		assert balance[message.note] >= 0

	assert len(port.sent) > 20
	assert all(count == 0 for count in balance.values())
	assert sink.sounding() == []


def test_send_failure_is_logged (clock, caplog) -> None:

	class BrokenPort:

		def send (self, message: mido.Message) -> None:
			raise OSError("unplugged")

	sink = arpline.midi_utils.MidiSink(clock, port=BrokenPort())
	sink.handle_note_off(arpline.events.NoteOff(pitch=60))

	assert "MIDI send failed" in caplog.text


# ---------------------------------------------------------------------------
# MidiRecorder
# ---------------------------------------------------------------------------

def test_recorder_writes_type_1_file (tmp_path) -> None:

	"""Recorded seconds become delta ticks at the recorder's tempo."""

	recorder = arpline.midi_utils.MidiRecorder(tempo=120, start_time=0.0)
	recorder.record(0.0, mido.Message('note_on', note=60, velocity=100))
	recorder.record(0.125, mido.Message('note_off', note=60, velocity=0))

	path = tmp_path / "out.mid"

	assert recorder.save(str(path))

	mid = mido.MidiFile(str(path))

	assert mid.type == 1
	assert mid.ticks_per_beat == 480

	tempo = [message for message in mid.tracks[0] if message.type == 'set_tempo']
	notes = [message for message in mid.tracks[0] if not message.is_meta]

	assert tempo[0].tempo == mido.bpm2tempo(120)
	assert [(message.type, message.time) for message in notes] == [('note_on', 0), ('note_off', 120)]


def test_recorder_start_defaults_to_first_event () -> None:

	recorder = arpline.midi_utils.MidiRecorder(tempo=60)
	recorder.record(10.0, mido.Message('note_on', note=60))
	recorder.record(11.0, mido.Message('note_off', note=60))

	notes = [message for message in recorder.to_midi_file().tracks[0] if not message.is_meta]

	assert [message.time for message in notes] == [0, 480]


def test_recorder_refuses_empty_save (tmp_path) -> None:

	recorder = arpline.midi_utils.MidiRecorder()

	assert not recorder.save(str(tmp_path / "empty.mid"))
	assert not (tmp_path / "empty.mid").exists()
