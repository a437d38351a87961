"""
/setup.py

Author: Jared Moore
Date: October, 2025
"""

import setuptools

with open("requirements.txt", "r", encoding="utf-8") as file:
    requirements = file.read().splitlines()

setuptools.setup(
    name="chatlog-merge",
    version="0.1.0",
    author="Jared Moore",
    author_email="jared@jaredmoore.org",
    description="Parse and merge exported chat logs with their media",
    package_dir={"": "src"},
    packages=setuptools.find_packages(where="src"),
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.10",
    install_requires=requirements,
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "chatlog-merge = chatlog_merge.commands:main",
        ]
    },
)
