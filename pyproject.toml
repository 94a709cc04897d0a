[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "cachingproxy"
version = "0.1.0"
description = "A small threaded HTTP forward proxy with an in-memory LRU response cache"
requires-python = ">=3.10"
dependencies = []
keywords = ["http", "proxy", "cache", "lru", "forward-proxy"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Proxy Servers",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
cachingproxy = "cachingproxy.server:main"

[tool.hatch.build.targets.wheel]
packages = ["cachingproxy"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
