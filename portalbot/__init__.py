"""Discord host for the Junimo portal discovery flow."""
