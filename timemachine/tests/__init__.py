#
