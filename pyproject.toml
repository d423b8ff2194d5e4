[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "brokerchain"
version = "0.1.0"
description = "Client for a sharded blockchain network: accounts, wallet, JSON-RPC gateway, proof-of-work join and CLPA account partitioning"
requires-python = ">=3.10"
keywords = [
    "blockchain",
    "sharding",
    "clpa",
    "wallet",
    "json-rpc",
    "proof-of-work",
    "ecdsa",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
    "Topic :: Security :: Cryptography",
]
dependencies = [
    "cryptography",
    "requests",
    "flask",
    "websocket-client",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[project.scripts]
brokerchain = "brokerchain.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["brokerchain"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
ignore_missing_imports = true
