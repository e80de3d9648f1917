"""Shared configuration, schema, storage and the model boundary."""
