"""Application services for eco.

Services implement the release workflow, coordinating between the domain
layer (core/) and infrastructure (git/, platform/).
"""
