"""Image handling and PDF output for packets, estimates and inspections."""
