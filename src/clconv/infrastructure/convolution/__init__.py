from ._convolution_layer import ConvolutionLayer, create_convolution_layer_from_file

__all__ = ["ConvolutionLayer", "create_convolution_layer_from_file"]
