"""Test suite for the backed session store."""
