"""
--------------------------------------------------------------------------------
AUTHOR:      AuditPulse Contributors
PURPOSE:     Installation script for AuditPulse.
LICENSE:     Apache License 2.0
--------------------------------------------------------------------------------
"""
import os
from setuptools import setup, find_packages

# Load the README for the long description on PyPI/distribution
long_description = ""
if os.path.exists("README.md"):
    with open("README.md", "r", encoding="utf-8") as f:
        long_description = f.read()

setup(
    name="auditpulse",
    version="1.0.0",
    author="AuditPulse Contributors",
    description="Smart Contract Audit Report Parser, Severity Classifier & Scorer",
    long_description=long_description,
    long_description_content_type="text/markdown",

    # Root of the package source
    package_dir={"": "src"},
    packages=find_packages(where="src"),

    # Dependencies aligned with production scripts
    install_requires=[
        "ruamel.yaml>=0.17.0",
        "rich>=12.0.0",
        "argcomplete>=2.0.0",
    ],
    extras_require={
        "tests": ["pytest>=7.0"],
    },

    # CLI entry point logic
    entry_points={
        "console_scripts": [
            "auditpulse=auditpulse.main:run",
        ],
    },

    # Metadata and Compliance
    include_package_data=True,
    python_requires=">=3.8",
    license="Apache-2.0",
    classifiers=[
        "Development Status :: 5 - Production/Stable",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Topic :: Security",
    ],
)
