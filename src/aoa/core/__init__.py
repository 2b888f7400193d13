"""Core infrastructure shared by the swarm and the CLI.

Organized submodules:
- result: Ok/Err results and the error hierarchy
- console: Rich console and logging setup
- process: subprocess execution with inherited, captured or prefixed output
- config: pydantic-settings configuration
- tasks: tasks file loading
"""
