[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "xfrpc"
version = "3.5.661"
description = "Client-side building blocks for an frp-style reverse proxy: TCP stream multiplexing, SOCKS5, FTP passive-mode rewriting, UDP payload framing and TCP redirection"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "frp",
    "reverse-proxy",
    "tunnel",
    "tcp-mux",
    "socks5",
    "ftp",
    "nat-traversal",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Proxy Servers",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[tool.hatch.build.targets.wheel]
packages = ["xfrpc"]

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
warn_redundant_casts = true
