"""scalecue-sim - terminal simulator for scalecue."""
