from setuptools import setup, find_packages

setup(
    name="shiftfsm",
    version="0.1.0",
    description="Transactional state machines with an outbox event log",
    author="shiftfsm Team",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "pyyaml>=6.0",
        "sqlalchemy>=2.0",
        "redis>=4.5",
        "click>=8.0",
        "rich>=13.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "hypothesis>=6.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "shiftfsm=shiftfsm.cli:main",
        ],
    },
)
