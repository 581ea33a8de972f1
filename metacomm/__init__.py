"""metacomm: trait-filtered meta-community simulator with detection correction.

Simulates site × species × visit detection data in which one species
trait drives both:
  - Environmental filtering (true occurrence along a gradient)
  - Detection filtering (probability of recording a present species)

and recovers the trait–occurrence relationship from imperfect
observations by fitting a single-season occupancy model per species
and using the posterior mode of true occurrence.

Entry points:
  - metacomm.simulator.simulate_metacommunity
  - metacomm.correction.correct_metacommunity
"""

__version__ = "0.1.0"
