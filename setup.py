#!/usr/bin/env python3
"""
Setup script for CanonWord package.
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="canon-word",
    version="0.2.0",
    description="Lexical representations from canonical correlation analysis of word contexts",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["canon_word", "canon_word.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
        "Topic :: Text Processing :: Linguistic",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
    python_requires=">=3.8",
    install_requires=[
        "numpy>=1.19.0",
        "scipy>=1.5.0",
    ],
    extras_require={
        "dev": [
            "pytest>=6.0",
            "black>=21.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "canon-word=canon_word.core:main",
        ],
    },
    keywords=[
        "word-embeddings",
        "canonical-correlation-analysis",
        "cca",
        "spectral-methods",
        "word-clustering",
        "hmm",
        "nlp",
        "distributional-semantics",
    ],
)
