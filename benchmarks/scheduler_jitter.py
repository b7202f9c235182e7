"""Look-ahead scheduler jitter benchmark.

Runs an arpeggiator on the asyncio clock for a configurable number of bars
and measures how late each note-on fires relative to its scheduled start
time, the same way the MIDI sink holds notes back until they are due.

Usage:
    python benchmarks/scheduler_jitter.py [--bpm BPM] [--bars N] [--division DIV]

Options:
    --bpm BPM           Tempo in BPM (default: 120)
    --bars N            Number of bars to measure (default: 8)
    --division DIV      Step division, e.g. 1/16 or 1/32T (default: 1/16)
"""

import argparse
import asyncio
import logging
import statistics

# Suppress engine logging during benchmark; we want clean output.
logging.basicConfig(level=logging.ERROR)

import arpline.arpeggiator
import arpline.clock
import arpline.events
import arpline.scheduler

# ---------------------------------------------------------------------------

BEATS_PER_BAR = 4


def _run_benchmark (bpm: float, bars: int, division: str) -> tuple[list[float], float]:

	"""Play *bars* bars and return (per-note lateness in seconds, step length)."""

	lateness: list[float] = []
	total_seconds = (60.0 / bpm) * BEATS_PER_BAR * bars

	async def _run () -> float:

		clock = arpline.clock.AsyncioClock()
		arp = arpline.arpeggiator.Arpeggiator(clock, arpline.arpeggiator.ArpeggiatorConfig(
			pattern = "upDown",
			octaves = 3,
			tempo = bpm,
			division = division,
		))

		def _hold (event: arpline.events.NoteEvent) -> None:
			clock.call_later(event.time - clock.now(), lambda: lateness.append(clock.now() - event.time))

		arp.on_note(_hold)
		arp.set_notes([48, 52, 55, 59])
		arp.start()

		await asyncio.sleep(total_seconds)

		arp.dispose()

		return arpline.scheduler.step_duration(bpm, arp.get_division())

	step = asyncio.run(_run())

	return lateness, step


def _print_report (lateness: list[float], step: float, bpm: float, bars: int, division: str) -> None:

	if not lateness:
		print("No timing data collected.")
		return

	ms = [value * 1000 for value in lateness]

	mean_ms   = statistics.mean(ms)
	median_ms = statistics.median(ms)
	stdev_ms  = statistics.stdev(ms) if len(ms) > 1 else 0.0
	p95_ms    = sorted(ms)[int(len(ms) * 0.95)]
	p99_ms    = sorted(ms)[int(len(ms) * 0.99)]
	max_ms    = max(ms)

	print(f"\nScheduler Jitter Benchmark - {bars} bars at {bpm:.0f} BPM ({division})")
	print(f"{'─' * 62}")
	print(f"  Notes measured  : {len(ms)}")
	print(f"  Step interval   : {step * 1000:.3f} ms")
	print(f"{'─' * 62}")
	print(f"  Mean lateness   : {mean_ms:>8.3f} ms")
	print(f"  Median lateness : {median_ms:>8.3f} ms")
	print(f"  Std deviation   : {stdev_ms:>8.3f} ms")
	print(f"  P95 lateness    : {p95_ms:>8.3f} ms")
	print(f"  P99 lateness    : {p99_ms:>8.3f} ms")
	print(f"  Max lateness    : {max_ms:>8.3f} ms")
	print(f"{'─' * 62}")

	if mean_ms < 0.5:
		rating = "Very good  (sub-500 μs, well below human perception)"
	elif mean_ms < 2.0:
		rating = "Good       (< 2 ms, at or below human perception threshold)"
	elif mean_ms < 5.0:
		rating = "Fair       (2-5 ms, may affect tight sync with hardware)"
	else:
		rating = "Poor       (> 5 ms, noticeable timing issues likely)"

	print(f"  Rating          : {rating}")
	print()


def main () -> None:

	parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
	parser.add_argument("--bpm",      type=float, default=120,    help="Tempo in BPM (default: 120)")
	parser.add_argument("--bars",     type=int,   default=8,      help="Bars to measure (default: 8)")
	parser.add_argument("--division", type=str,   default="1/16", help="Step division (default: 1/16)")
	args = parser.parse_args()

	lateness, step = _run_benchmark(args.bpm, args.bars, args.division)
	_print_report(lateness, step, args.bpm, args.bars, args.division)


if __name__ == "__main__":
	main()
