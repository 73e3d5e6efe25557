"""Link native modules into the iOS and Android projects of a React Native style app."""

__version__ = "0.1.0"
