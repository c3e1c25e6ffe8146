"""File formats: PSF/COOR structure snapshots, DCD trajectories, NAMD cell records and index files."""
