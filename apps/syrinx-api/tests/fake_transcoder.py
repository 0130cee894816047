"""Stand-in for ffmpeg: wraps whatever arrives on stdin in ADTS-style frames.

Options:
    --exit CODE    exit with CODE after stdin closes (and complain on stderr)
    --hang         never read stdin, never exit (must be terminated)
    --ignore-term  ignore SIGTERM (must be killed)
"""

import os
import signal
import sys
import time

ADTS_HEADER = bytes([0xFF, 0xF1, 0x50, 0x80, 0x00, 0x1F, 0xFC])


def main(argv: list[str]) -> int:
    if "--ignore-term" in argv:
        signal.signal(signal.SIGTERM, signal.SIG_IGN)
    if "--hang" in argv:
        while True:
            time.sleep(1)

    exit_code = int(argv[argv.index("--exit") + 1]) if "--exit" in argv else 0
    out = sys.stdout.buffer
    while True:
        data = os.read(0, 4096)
        if not data:
            break
        out.write(ADTS_HEADER + data)
        out.flush()

    if exit_code:
        sys.stderr.write("fake transcoder failure\n")
        sys.stderr.flush()
    return exit_code


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
