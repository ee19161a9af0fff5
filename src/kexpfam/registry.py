from kexpfam.basis import random_component_mask, random_point_mask

from kexpfam.kernel import GaussianKernel

from kexpfam.distribution import Banana, IsotropicGaussian

KERNEL_REGISTRY = {cls.name: cls for cls in [GaussianKernel]}

DISTRIBUTION_REGISTRY = {cls.name: cls for cls in [IsotropicGaussian, Banana]}

# basis mode -> random mask over the data, signature (key, N, D, m)
BASIS_REGISTRY = {
    "points": random_point_mask,
    "components": random_component_mask,
}
