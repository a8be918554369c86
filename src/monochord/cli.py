"""
══════════════════════════════════════════════════════════════════════════════
MONOCHORD STUDIO CLI
══════════════════════════════════════════════════════════════════════════════

Headless front end: runs a session or the tuner on the real-time scheduler
and reports display pushes through the log.

Example usage:
    python -m monochord session --preset grounding --duration 600
    python -m monochord tuner --instrument koto --sweep
    python -m monochord presets
"""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from .config import MonochordConfig, get_default_config, load_config, set_default_config
from .core.events import LoggingListener
from .core.live_effects import Effect, LiveEffectsEngine
from .core.pitch_detector import PitchDetector
from .core.scheduler import Scheduler
from .core.tone_engine import ToneEngine
from .core.tuner import TunerToneEngine
from .core.tuning import TUNING_432, TUNING_440, Instrument, NOTE_OFFSETS
from .logging_config import quiet_realtime_loggers, set_logging_level, setup_logging
from .session.controller import SessionScheduler
from .session.presets import PRESETS

logger = logging.getLogger(__name__)


def _resolve_config(args) -> MonochordConfig:
    config = get_default_config()
    if args.config:
        config_path = Path(args.config)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        config = load_config(str(config_path))
    if getattr(args, 'backend', None):
        config = replace(config, audio=replace(config.audio, backend=args.backend))
    set_default_config(config)
    return config


# ══════════════════════════════════════════════════════════════════════════════
# COMMANDS
# ══════════════════════════════════════════════════════════════════════════════

def run_session(args, config: MonochordConfig) -> int:
    scheduler = Scheduler()
    listener = LoggingListener()
    engine = ToneEngine(scheduler, listener=listener, config=config.tone, audio_config=config.audio)
    session = SessionScheduler(engine, scheduler, listener=listener, config=config.session)

    session.select_preset(args.preset or config.session.preset)
    if args.duration:
        session.set_duration(args.duration)
    if args.tuning:
        session.set_tuning(args.tuning == 432)
    session.set_detune(args.detune)

    if not session.start():
        logger.error("Audio output unavailable, session not started")
        return 1

    effects = LiveEffectsEngine(engine, scheduler, listener, config.effects)
    for name in filter(None, (args.effects or '').split(',')):
        effects.toggle(Effect(name.strip()))

    if args.run_for is not None:
        run_time = args.run_for
    elif session.is_free_mode:
        run_time = None
    else:
        run_time = session.duration + config.session.chime.length + 0.5

    try:
        if run_time is None:
            logger.info("Free play: Ctrl-C to stop")
            while True:
                scheduler.run_for(3600)
        else:
            scheduler.run_for(run_time)
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        effects.stop_all()
        if session.is_running:
            session.stop()
            scheduler.run_for(config.tone.fade + config.tone.release_margin + 0.1)
        engine.close()
    return 0


def run_tuner(args, config: MonochordConfig) -> int:
    scheduler = Scheduler()
    listener = LoggingListener()
    detector = None
    if args.listen:
        detector = PitchDetector(scheduler, listener=listener, config=config.detector,
                                 audio_config=config.audio, reference_pitch=args.reference)
    tuner = TunerToneEngine(scheduler, listener=listener, detector=detector,
                            config=config.tuner, audio_config=config.audio)
    tuner.set_reference_pitch(args.reference)
    tuner.set_root_note(args.root)
    tuner.set_instrument(args.instrument)

    for info in tuner.strings():
        print(f"  {info.index + 1:2d}. {info.name:<4} {info.frequency:8.2f} Hz")

    run_time = args.run_for
    if args.sweep:
        tuner.toggle_sweep()
        run_time = run_time or len(tuner.strings()) * config.tuner.sweep_dwell + 0.5
    elif args.octave:
        tuner.toggle_octave_check()
        run_time = run_time or config.tuner.check_duration + 0.5
    elif args.fifth:
        tuner.toggle_fifth_check()
        run_time = run_time or config.tuner.check_duration + 0.5

    if detector is not None and not detector.start():
        return 1
    if detector is not None and run_time is None:
        run_time = 30.0

    try:
        if run_time:
            scheduler.run_for(run_time)
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        if detector is not None:
            detector.stop()
        tuner.close()
        scheduler.run_for(config.tuner.fade_out + config.tuner.release_margin + 0.05)
    return 0


def list_presets(args, config: MonochordConfig) -> int:
    print(f"{'key':<14}{'name':<20}{'A=432':>20}{'A=440':>20}")
    for preset in PRESETS.values():
        pairs = preset.sequence or ((preset.left, preset.right),)
        for i, (left, right) in enumerate(pairs):
            key, name = (preset.key, preset.name) if i == 0 else ('', '')
            f432 = f"{TUNING_432.frequency(left):.2f}/{TUNING_432.frequency(right):.2f}"
            f440 = f"{TUNING_440.frequency(left):.2f}/{TUNING_440.frequency(right):.2f}"
            print(f"{key:<14}{name:<20}{f432:>20}{f440:>20}")
    return 0


# ══════════════════════════════════════════════════════════════════════════════
# ARGUMENTS
# ══════════════════════════════════════════════════════════════════════════════

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='monochord',
        description='Binaural drone sessions, instrument tuner and pitch detector',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Ten-minute guided session at A=432
  python -m monochord session --preset grounding --duration 600

  # Free play with pan drift and pulse, silent backend
  python -m monochord session --preset free --effects pan,pulse --backend dummy --for 60

  # Koto sweep, then listen
  python -m monochord tuner --instrument koto --sweep --listen
        """
    )
    parser.add_argument('--config', '-c', default=None, help='Path to YAML configuration file')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    parser.add_argument('--quiet', '-q', action='store_true', help='Warnings and errors only')

    sub = parser.add_subparsers(dest='command')

    session = sub.add_parser('session', help='Run a drone session')
    session.add_argument('--preset', '-p', choices=sorted(PRESETS), default=None)
    session.add_argument('--duration', '-d', type=int, default=None, help='Seconds (guided presets)')
    session.add_argument('--tuning', '-t', type=int, choices=(432, 440), default=None)
    session.add_argument('--detune', action='store_true', help='Slow random detune drift')
    session.add_argument('--effects', '-e', default='',
                         help='Comma list: ' + ','.join(e.value for e in Effect))
    session.add_argument('--backend', '-b', choices=('pyaudio', 'dummy'), default=None)
    session.add_argument('--for', dest='run_for', type=float, default=None,
                         help='Stop after this many seconds')
    session.set_defaults(handler=run_session)

    tuner = sub.add_parser('tuner', help='Reference tones and pitch detection')
    tuner.add_argument('--instrument', '-i', choices=[i.value for i in Instrument], default='monochord')
    tuner.add_argument('--root', '-r', choices=list(NOTE_OFFSETS), default='D')
    tuner.add_argument('--reference', type=int, choices=(432, 440), default=432)
    mode = tuner.add_mutually_exclusive_group()
    mode.add_argument('--sweep', action='store_true', help='Play every string in turn')
    mode.add_argument('--octave', action='store_true', help='Root octave check')
    mode.add_argument('--fifth', action='store_true', help='Root + fifth check')
    tuner.add_argument('--listen', action='store_true', help='Detect pitch from the microphone')
    tuner.add_argument('--backend', '-b', choices=('pyaudio', 'dummy'), default=None)
    tuner.add_argument('--for', dest='run_for', type=float, default=None,
                       help='Stop after this many seconds')
    tuner.set_defaults(handler=run_tuner)

    presets = sub.add_parser('presets', help='List presets in both tunings')
    presets.set_defaults(handler=list_presets)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 2

    setup_logging(debug=args.verbose)
    if args.quiet:
        set_logging_level(logging.WARNING)
    elif not args.verbose:
        quiet_realtime_loggers()

    try:
        config = _resolve_config(args)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        return 1
    return args.handler(args, config)


if __name__ == '__main__':
    sys.exit(main())
