[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "viperclient"
version = "0.1.0"
description = "Toolkit for forwarding JSON-RPC requests and signed relays to blockchain nodes and the Viper Network"
requires-python = ">=3.10"
keywords = ["json-rpc", "relay", "blockchain", "gateway", "viper-network", "rate-limiting", "ed25519"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP",
]
dependencies = [
    "cryptography",
    "httpx",
    "sqlalchemy",
    "starlette",
]

[project.optional-dependencies]
test = [
    "pytest",
    "httpx",
]

[project.scripts]
viperclient-setup-network = "viperclient.setup_network:main"

[tool.hatch.build.targets.wheel]
packages = ["viperclient"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
