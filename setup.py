from setuptools import setup, find_packages

'''
Notes: This is the setup file for the PortSurgeon project.
It defines the package metadata and dependencies required for installation.
'''

setup(
    name = "PortSurgeon",
    version = "1.0.0",
    description= "PortSurgeon - Port inspection and safety-gated process termination",
    packages=find_packages(include=["portsurgeon", "portsurgeon.*"]),
    python_requires='>=3.10',
    install_requires=[
        # Core
        "fastapi",
        "uvicorn[standard]",
        "pydantic>=2",
        "PyYAML",

        # System & Security
        "psutil",
        "argon2-cffi",
        "python-dotenv",
        "cryptography",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
            "httpx",
        ],
    },
    entry_points={
        "console_scripts": [
            "portsurgeon=portsurgeon.server.server:main",
        ],
    },
)
