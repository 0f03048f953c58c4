from setuptools import setup, find_packages


setup(
    name="ncmdump",
    version="0.1",
    packages=find_packages(include=["ncmdump", "ncmdump.*"]),
    description="Decode NCM encrypted audio containers into plain audio, metadata and cover art.",
    install_requires=[
        "pycryptodomex>=3.23.0",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "ncmdump=ncmdump.cli:main",
        ]
    },
)
