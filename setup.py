# -*- coding: utf-8 -*-
import setuptools
import pathlib
import site
import sys

# odd bug with develop (editable) installs, see: https://github.com/pypa/pip/issues/7953
site.ENABLE_USER_SITE = "--user" in sys.argv[1:]

required = [
    "numpy",
    "scipy",
    "numba",
    "pyvisa",
    "pyvisa_py",
    "mashumaro",
    "loguru",
    "rich>=13.0.0",
    "click>=8.0.0",
    "click-option-group",
    "tqdm",
]

test_required = [
    "pytest",
    "pytest_asyncio>=0.24.0",
]

here = pathlib.Path(__file__).parent.resolve()

long_description = (here / "README.md").read_text(encoding="utf-8")

# Read version
version = {}
with open("src/wavescope/_version.py", "r") as f:
    exec(f.read(), version)

if __name__ == "__main__":
    setuptools.setup(
        name="wavescope",
        version=version["__version__"],
        description="Oscilloscope acquisition, filter graph and signal-integrity analysis.",
        long_description=long_description,
        long_description_content_type="text/markdown",
        keywords=[
            "oscilloscope",
            "SCPI",
            "VISA",
            "signal integrity",
            "eye pattern",
        ],
        classifiers=[
            "License :: OSI Approved :: MIT License",
            "Development Status :: 2 - Pre-Alpha",
        ],
        license="MIT",
        package_dir={"": "src"},
        packages=setuptools.find_packages(
            where="src",
            exclude=["*.test", "*.test.*", "test.*", "test", "test_*"],
        ),
        entry_points={
            "console_scripts": [
                "wavescope=wavescope.cli:cli",
            ],
        },
        install_requires=required,
        extras_require={"test": test_required},
        python_requires=">= 3.11",
        package_data={"": ["*.md", "*.json"]},
        setup_requires=["wheel"],  # force install of wheel first
    )
# https://setuptools.readthedocs.io/en/latest/userguide/datafiles.html
