"""
arpline - an arpeggiator and step-sequencer pattern engine for MIDI.

arpline turns held notes or a programmed grid into precisely timed note
events. Timing never rides on the host timer: a look-ahead scheduler wakes
every 25 ms, queues everything due in the next 100 ms with its exact start
time, and accumulates step lengths so jitter never becomes drift. Events go
to listeners, and the bundled MIDI sink plays them on a port or writes them
to a Standard MIDI File.

What is in the box:

- **Arpeggiator.** Thirteen patterns (up, down, up-down, converge, diverge,
  pinched, random, shuffle, chord strikes and more) over 1-4 octaves, note
  divisions from quarters to thirty-seconds including triplets, gate length,
  swing and humanize.
- **Chords and progressions.** A shared, read-only catalog of chord shapes
  and progressions. A loaded progression advances to its next chord every
  N completed cycles.
- **Step sequencer.** 4 to 64 steps with per-step gate, pitch, velocity and
  length; forward, reverse, ping-pong and random playback; absolute or
  key-relative pitches; step recording from live input; a pattern bank that
  several sequencers can share.
- **Routing.** Live keys go to a recording sequencer, a sequencer, an
  arpeggiator or straight through, in that order of priority.
- **Clocks.** Runs on the asyncio event loop for live playback, or on a
  virtual clock for tests and faster-than-real-time rendering.

Minimal example:

    ```python
    import asyncio
    import arpline

    async def main ():
        clock = arpline.AsyncioClock()
        arp = arpline.Arpeggiator(clock, arpline.ArpeggiatorConfig(pattern="upDown", tempo=110))
        arp.on_note(lambda event: print(event.pitch, round(event.time, 3)))
        arp.load_progression("minor-i-vi-iii-vii", root=57)
        arp.start()
        await asyncio.sleep(4)
        arp.dispose()

    asyncio.run(main())
    ```

Package-level exports: ``Arpeggiator``, ``ArpeggiatorConfig``,
``StepSequencer``, ``AsyncioClock``, ``VirtualClock``, ``NoteRouter``,
``generate_sequence``.
"""

import arpline.arpeggiator
import arpline.clock
import arpline.patterns
import arpline.router
import arpline.step_sequencer


Arpeggiator = arpline.arpeggiator.Arpeggiator
ArpeggiatorConfig = arpline.arpeggiator.ArpeggiatorConfig
StepSequencer = arpline.step_sequencer.StepSequencer
AsyncioClock = arpline.clock.AsyncioClock
VirtualClock = arpline.clock.VirtualClock
NoteRouter = arpline.router.NoteRouter
generate_sequence = arpline.patterns.generate_sequence
