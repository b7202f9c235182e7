import argparse
import asyncio
import logging
import os
import random
import typing

import yaml

import arpline.arpeggiator
import arpline.clock
import arpline.midi_utils
import arpline.router
import arpline.step_sequencer


# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


Engine = typing.Union[arpline.arpeggiator.Arpeggiator, arpline.step_sequencer.StepSequencer]

SEQUENCER_SETTINGS = ("steps", "tempo", "swing", "mode", "division", "pitch_mode", "root_note", "note_hold")


def load_config (config_path: str = 'config.yaml') -> dict:

	"""
	Load configuration from a YAML file.
	"""

	if not os.path.exists(config_path):
		logger.warning(f"Config file {config_path} not found. Using defaults.")
		return {}

	with open(config_path, 'r') as f:
		return yaml.safe_load(f) or {}


def build_arpeggiator (
	clock: arpline.clock.Clock,
	settings: typing.Dict[str, typing.Any],
	rng: typing.Optional[random.Random] = None,
	auto_start: bool = False
) -> arpline.arpeggiator.Arpeggiator:

	"""
	Create an arpeggiator from the ``arpeggiator`` config section.

	Besides the :class:`arpline.arpeggiator.ArpeggiatorConfig` fields the
	section may hold a ``chord`` (``{root, name}``) or a ``progression``
	(``{name, root, bars_per_chord}``) to start with.
	"""

	settings = dict(settings)
	chord = settings.pop('chord', None)
	progression = settings.pop('progression', None)

	arp = arpline.arpeggiator.Arpeggiator(
		clock,
		arpline.arpeggiator.ArpeggiatorConfig.from_dict(settings),
		rng = rng,
		auto_start = auto_start
	)

	if progression:
		arp.load_progression(progression.get('name', ''), root=progression.get('root', 60), bars_per_chord=progression.get('bars_per_chord', 1))

	elif chord:
		arp.set_chord(chord.get('root', 60), chord.get('name', 'major'))

	return arp


def build_sequencer (
	clock: arpline.clock.Clock,
	settings: typing.Dict[str, typing.Any],
	rng: typing.Optional[random.Random] = None,
	auto_start: bool = False
) -> arpline.step_sequencer.StepSequencer:

	"""
	Create a step sequencer from the ``sequencer`` config section.

	``fill`` may be ``bassline``, ``melodic``, ``generative`` or ``random``.
	"""

	for key in settings:
		if key not in SEQUENCER_SETTINGS and key != 'fill':
			logger.warning(f"Ignoring unknown sequencer setting {key!r}")

	seq = arpline.step_sequencer.StepSequencer(
		clock,
		rng = rng,
		auto_start = auto_start,
		**{key: value for key, value in settings.items() if key in SEQUENCER_SETTINGS}
	)

	fill = settings.get('fill', 'bassline')

	if fill == 'bassline':
		seq.fill_bassline()
	elif fill == 'melodic':
		seq.fill_melodic()
	elif fill == 'generative':
		seq.fill_generative()
	elif fill == 'random':
		seq.randomize()
	elif fill:
		logger.warning(f"Unknown sequencer fill {fill!r}")

	return seq


def build_engine (
	config: typing.Dict[str, typing.Any],
	clock: arpline.clock.Clock,
	rng: typing.Optional[random.Random] = None,
	auto_start: bool = False
) -> Engine:

	engine_name = config.get('engine', 'arpeggiator')

	if engine_name == 'sequencer':
		return build_sequencer(clock, config.get('sequencer') or {}, rng, auto_start)

	if engine_name != 'arpeggiator':
		raise ValueError(f"Unknown engine {engine_name!r}, expected 'arpeggiator' or 'sequencer'")

	return build_arpeggiator(clock, config.get('arpeggiator') or {}, rng, auto_start)


def render (config: typing.Dict[str, typing.Any], filename: str, seconds: float, seed: typing.Optional[int] = None) -> bool:

	"""
	Run an engine on a virtual clock for ``seconds`` and save the result as a MIDI file.
	"""

	clock = arpline.clock.VirtualClock()
	engine = build_engine(config, clock, rng=random.Random(seed))

	recorder = arpline.midi_utils.MidiRecorder(tempo=engine.get_tempo(), start_time=0.0)
	sink = arpline.midi_utils.MidiSink(clock, channel=config.get('midi', {}).get('channel', 0), recorder=recorder)
	sink.attach(engine)

	logger.info(f"Rendering {seconds:g}s to {filename}...")

	engine.start()
	clock.advance(seconds)
	engine.stop()

	return recorder.save(filename)


async def play (config: typing.Dict[str, typing.Any], seconds: typing.Optional[float] = None) -> None:

	"""
	Play live to a MIDI output, optionally driven by a MIDI input keyboard.

	Without an input device the engine starts at once. With one, keys are
	routed to the engine, which starts and stops with them.
	"""

	midi_config = config.get('midi', {})
	loop = asyncio.get_running_loop()
	clock = arpline.clock.AsyncioClock(loop)

	device_name, midi_out = arpline.midi_utils.select_output_device(midi_config.get('output'))

	if midi_out is None:
		logger.error("No MIDI output available, exiting")
		return

	input_name = midi_config.get('input')
	engine = build_engine(config, clock, auto_start=input_name is not None)

	sink = arpline.midi_utils.MidiSink(clock, port=midi_out, channel=midi_config.get('channel', 0))
	sink.attach(engine)

	midi_in = None

	if input_name is not None:

		if isinstance(engine, arpline.step_sequencer.StepSequencer):
			router = arpline.router.NoteRouter(clock, sequencer=engine)
		else:
			router = arpline.router.NoteRouter(clock, arpeggiator=engine)

		sink.attach(router)
		_, midi_in = arpline.midi_utils.select_input_device(input_name, router.input_callback(loop))

	else:
		engine.start()

	try:
		if seconds is None:
			await asyncio.Event().wait()
		else:
			await asyncio.sleep(seconds)

	finally:
		engine.dispose()
		sink.panic()

		if midi_in is not None:
			midi_in.close()

		midi_out.close()
		logger.info(f"Closed {device_name}")


def parse_args (argv: typing.Optional[typing.List[str]] = None) -> argparse.Namespace:

	parser = argparse.ArgumentParser(prog="arpline", description="Arpeggiator and step sequencer for MIDI.")

	parser.add_argument("--config", default="config.yaml", help="YAML config file (default: config.yaml)")
	parser.add_argument("--engine", choices=["arpeggiator", "sequencer"], help="Engine to run")
	parser.add_argument("--output", help="MIDI output device name")
	parser.add_argument("--input", help="MIDI input device name for live keys")
	parser.add_argument("--channel", type=int, help="MIDI channel 0-15")
	parser.add_argument("--tempo", type=float, help="Tempo in BPM")
	parser.add_argument("--pattern", help="Arpeggio pattern, e.g. upDown")
	parser.add_argument("--progression", help="Chord progression for the arpeggiator, e.g. jazz-ii-v-i")
	parser.add_argument("--render", metavar="FILE", help="Render offline to a MIDI file instead of playing")
	parser.add_argument("--seconds", type=float, help="How long to play or render")
	parser.add_argument("--seed", type=int, help="Random seed for repeatable renders")

	return parser.parse_args(argv)


def apply_overrides (config: typing.Dict[str, typing.Any], args: argparse.Namespace) -> typing.Dict[str, typing.Any]:

	"""
	Merge command-line flags over the file config. Returns a new dict.
	"""

	merged = dict(config)
	midi = dict(merged.get('midi') or {})
	arp = dict(merged.get('arpeggiator') or {})
	seq = dict(merged.get('sequencer') or {})

	if args.engine:
		merged['engine'] = args.engine

	if args.output:
		midi['output'] = args.output

	if args.input:
		midi['input'] = args.input

	if args.channel is not None:
		midi['channel'] = args.channel

	if args.tempo is not None:
		arp['tempo'] = args.tempo
		seq['tempo'] = args.tempo

	if args.pattern:
		arp['pattern'] = args.pattern

	if args.progression:
		arp['progression'] = {**(arp.get('progression') or {}), 'name': args.progression}

	merged['midi'] = midi
	merged['arpeggiator'] = arp
	merged['sequencer'] = seq

	return merged


def main (argv: typing.Optional[typing.List[str]] = None) -> None:

	"""
	Main entry point for the arpline command.
	"""

	args = parse_args(argv)
	config = apply_overrides(load_config(args.config), args)

	if args.render:
		render(config, args.render, args.seconds if args.seconds is not None else 8.0, seed=args.seed)
		return

	logger.info("arpline starting...")

	try:
		asyncio.run(play(config, args.seconds))
	except KeyboardInterrupt:
		pass


if __name__ == "__main__":
	main()
