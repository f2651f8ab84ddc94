"""CI Admin module: click CLI for the address book, build history and recipients."""
