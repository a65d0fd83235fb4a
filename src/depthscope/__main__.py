"""Allow `python -m depthscope`."""

from depthscope.cli import main

main()
