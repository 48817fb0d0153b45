"""npmplus — package-management gateway for npm, yarn and pnpm projects."""

__version__ = "0.1.0"
