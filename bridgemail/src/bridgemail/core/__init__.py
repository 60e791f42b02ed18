"""Pure mail-processing components: search, MIME structure, bodies, composition."""
