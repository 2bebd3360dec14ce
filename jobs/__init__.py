"""Job store and queue transport for the extraction pipeline."""
