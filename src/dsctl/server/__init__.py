"""Server lifecycle control: process runner, output relays, connectivity probe."""
