from setuptools import setup, find_packages


setup(
    name="treehash",
    version="1.0",
    packages=find_packages(),
    description="Create and verify integrity ledgers (hashes or HMACs) for a directory tree.",
    author="vercingetorx",
    install_requires=[
        "pycryptodomex>=3.23.0",
    ],
    entry_points={
        "console_scripts": [
            "treehash=treehash.cli:main",
        ]
    },
)
