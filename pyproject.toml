[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "cloudsweep"
version = "0.1.0"
description = "Find and delete stale cloud resources by age and name: ECS services, Elastic IPs, EKS clusters, load balancers, KMS keys, Lambda functions and more."
requires-python = ">=3.11"
dependencies = []
keywords = ["cloud", "cleanup", "aws", "infrastructure", "sandbox"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Systems Administration",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["cloudsweep"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
