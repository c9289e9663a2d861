"""FaceGuard: live face identification with an incrementally trained matcher."""
