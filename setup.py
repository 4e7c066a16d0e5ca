from pathlib import Path

from setuptools import setup

install_requires = [
    "curio>=1.4",
]

setup(
    name='curious-richpresence',
    version='0.1.0',
    packages=['richpresence', 'richpresence.dataclasses', 'richpresence.ipc'],
    url='https://github.com/SunDwarf/curious',
    license='LGPLv3',
    description='An async library for Discord Rich Presence over local IPC',
    long_description=Path(__file__).with_name("README.rst").read_text(encoding="utf-8"),
    python_requires=">=3.8",
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3 :: Only",
        "Development Status :: 4 - Beta"
    ],
    install_requires=install_requires,
    extras_require={
        "test": [
            "pytest",
        ],
    },
)
