# -*- coding: utf-8 -*-

DEFAULT_LOGLEVEL = "INFO"
TEST_LOGLEVEL = "TRACE"
SINGLE_LINE_ERR_LOG = False  # reformat tracebacks into a single line

DEFAULT_TIMEOUT = 30  # seconds, long enough for slow VNA sweeps
DEFAULT_CHUNK_SIZE = 50_000_000  # bytes per raw block read
POLL_INTERVAL = 0.01  # seconds between trigger polls
FORCE_TRIGGER_TIMEOUT = 1.0  # seconds before a forced capture counts as triggered

RLE_TAIL_GUARD = 3  # samples at the end of a digital capture never merged
BATHTUB_FLOOR = -14.0  # log10 BER reported for bins with no hits

FS_PER_SECOND = 1_000_000_000_000_000
