"""
Command-line interface for wavescope.

Built on click; every group accepts ``--tree``.

Examples
--------
Capture from the simulated instrument and measure its frequency:
```bash
$ wavescope acquire -t mock -m Frequency
```

Listing available VISA instruments:
```bash
$ wavescope visa-list
```

CLI Tree
--------

```
$ wavescope --tree
wavescope
└── acquire
└── cascade
└── deembed
└── drivers
└── filters
└── transports
└── visa-list
```
"""

from .base import cli, print_tree, tree_option

__all__ = ["cli", "print_tree", "tree_option"]
