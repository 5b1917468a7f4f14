from setuptools import setup, find_packages


setup(
    name="lzpack",
    version="0.1",
    packages=find_packages(exclude=["tests", "tests.*"]),
    description="Compress and encrypt every file under a path, in place, and back again.",
    author="vercingetorx",
    python_requires=">=3.11",
    install_requires=[
        "pycryptodomex>=3.23.0",
        "argon2-cffi>=23.1.0",
        "zstandard>=0.22.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "lz=lzpack.cli:main",
        ]
    },
)
