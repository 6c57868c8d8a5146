from setuptools import find_packages, setup


setup(
    name="steam-cli",
    version="1.0.0",
    description="Command-line Steam client with a persistent session daemon",
    packages=find_packages(exclude=["tests", "tests.*"]),
    license="LGPLv3",
    python_requires=">=3.11",
    install_requires=[
        "websocket-client",
    ],
    entry_points={
        "console_scripts": [
            "steam = steam_cli:main",
        ],
    },
)
