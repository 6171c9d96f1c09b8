#!/usr/bin/env python3
"""
Setup script for Hearken - wake-word voice assistant with tool calling
"""
from setuptools import setup, find_packages
import os

# Read the contents of README file
this_directory = os.path.abspath(os.path.dirname(__file__))
with open(os.path.join(this_directory, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

setup(
    name="hearken",
    version="1.0.0",
    author="Hearken Team",
    description="Wake-word voice assistant that answers through a tool-calling chat-completion service",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(where="src", exclude=["tests", "tests.*"]),
    package_dir={"": "src"},
    include_package_data=True,
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Sound/Audio :: Speech",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
    ],
    keywords="voice-assistant wake-word vosk piper llm tool-calling",
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.21.0",
        "sounddevice>=0.4.0",
        "PyYAML>=6.0",
        "requests>=2.25.0",
        "vosk>=0.3.45",
        "piper-tts>=1.3.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "black>=22.0.0",
            "flake8>=4.0.0",
            "mypy>=0.950",
        ],
    },
    entry_points={
        "console_scripts": [
            "hearken=hearken.cli:main",
        ],
    },
)
