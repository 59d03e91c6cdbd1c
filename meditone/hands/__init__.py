"""HANDS: sound making.

- Effects: biquads, dynamics, convolution, panning, crossfades
- Synth: reverb IR, singing bowl, breathing guide, chime, tones
- Ambience: rain, ocean, forest, fire, space beds
- Bed: background acquisition and crossfaded looping
"""
