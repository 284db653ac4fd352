# setup.py
from setuptools import setup, find_packages

setup(
    name="mini_amm",
    version="0.1.0",
    packages=find_packages(include=["mini_amm", "mini_amm.*"]),
    install_requires=[
        "msgpack",            # account and pool records
        "pycryptodome",       # keccak pool addresses
        "cryptography",       # ECDSA account keys
        "prometheus_client",  # pool metrics
        "psutil",             # monitoring
    ],
    extras_require={
        "test": ["pytest"],
    },
)
