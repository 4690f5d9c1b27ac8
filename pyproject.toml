[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sipcollect"
version = "0.1.0"
description = "Extract SIP messages from captured Ethernet frames and batch them into SQL inserts"
requires-python = ">=3.10"
dependencies = []
keywords = ["sip", "voip", "pcap", "packet", "capture", "mysql", "fragment"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Telecommunications Industry",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: System :: Networking :: Monitoring",
    "Topic :: Communications :: Internet Phone",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["sipcollect"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
