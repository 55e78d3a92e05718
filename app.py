#!/usr/bin/python

import argparse
import logging
import sys

import config
import pitch
import spokes
from capture import FifoCapture, WavCapture
from config import SpokeSettings
from errors import SpokeTensionError
from session import format_measurement, measure

SPOKE_LENGTH_MM = 180
SPOKE_DIAMETER_MM = 2.0


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Estimate spoke tension from the pitch of a pluck")
    parser.add_argument("--length", type=float, default=SPOKE_LENGTH_MM,
                        help="vibrating length in mm")
    parser.add_argument("--diameter", type=float, default=SPOKE_DIAMETER_MM,
                        help="spoke diameter in mm")
    parser.add_argument("--material", choices=sorted(spokes.MATERIALS),
                        default="steel")
    parser.add_argument("--duration", type=float, default=config.DURATION_DEFAULT,
                        help="seconds, clamped to [0.5, 10]")
    parser.add_argument("--calibration", type=float,
                        default=config.CALIBRATION_DEFAULT,
                        help="tension multiplier, clamped to [0.5, 2.0]")
    parser.add_argument("--estimator", choices=sorted(pitch.ESTIMATORS),
                        default=config.ESTIMATOR_DEFAULT)
    parser.add_argument("--wav", help="replay a recording instead of live audio")
    parser.add_argument("--fifo", default="/tmp/audio_fifo",
                        help="named pipe carrying 16-bit mono PCM")
    parser.add_argument("--producer", nargs="+",
                        help="command writing audio into the pipe")
    parser.add_argument("--defines",
                        help="C source declaring SAMPLE_RATE and FRAMES_PER_BUFFER")
    parser.add_argument("--chart", metavar="PATH",
                        help="save the pitch/tension chart for this spoke and exit")
    parser.add_argument("--headless", action="store_true",
                        help="measure once and print the result")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def build_settings(args):
    return SpokeSettings.from_user(args.length, args.diameter,
                                   material=args.material,
                                   duration=args.duration,
                                   calibration=args.calibration,
                                   estimator=args.estimator)


def build_capture(args):
    if args.wav:
        return WavCapture(args.wav)
    sample_rate, frames = config.SAMPLE_RATE, config.FRAMES_PER_BUFFER
    if args.defines:
        sample_rate, frames = config.read_defines(args.defines)
    return FifoCapture(args.fifo, producer=args.producer,
                       sample_rate=sample_rate, frames=frames)


def run_headless(args):
    try:
        result = measure(build_capture(args), build_settings(args))
    except SpokeTensionError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    print(format_measurement(result))
    return 0


def save_chart(args):
    try:
        settings = build_settings(args).validate()
        spokes.save_tension_chart(args.chart, settings.diameter, settings.density,
                                  calibration=settings.calibration)
    except (SpokeTensionError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    print(f"chart saved to {args.chart}")
    return 0


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.chart:
        return save_chart(args)
    if args.headless:
        return run_headless(args)

    import pyqtgraph
    from pyqtgraph.Qt import QtWidgets

    from window import MainWindow

    pyqtgraph.setConfigOptions(antialias=True)
    qt_application = QtWidgets.QApplication([])
    main_window = MainWindow(args, build_capture)
    main_window.show()
    return qt_application.exec()


if __name__ == "__main__":
    sys.exit(main())
